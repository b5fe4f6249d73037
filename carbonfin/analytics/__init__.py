"""Input normalisation, scenario loading and batch analytics."""
