"""Pure dataframe transforms."""
