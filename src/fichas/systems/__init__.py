"""Sheet lifecycle and batch import."""
