"""Command-line front end for the merge engine."""
