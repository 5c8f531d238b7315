"""Collectors package for SLURM data.

Contains parsers and aggregations for the different SLURM resource types.
Each collector module provides parse, fetch and generate_metrics functions;
fetch and generate_metrics can be composed with the SlurmCollector class.
"""
