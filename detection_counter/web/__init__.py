"""Web interface for the detection counter."""
