"""Commands shipped with finch."""
