"""Writers for the fund score cache."""
