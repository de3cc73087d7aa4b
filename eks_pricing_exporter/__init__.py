"""Prometheus exporter for the hourly price of EKS cluster nodes."""

__version__ = "0.2.1"