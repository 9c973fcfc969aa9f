"""HTTP studio API for the highlight pipeline."""
