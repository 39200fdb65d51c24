"""Reconcile tracked activity with entries committed to a work-log system."""

__version__ = "0.1.0"
