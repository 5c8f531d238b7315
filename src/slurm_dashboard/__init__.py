"""Slurm Dashboard.

Polls a SLURM cluster through its command-line tools (scontrol, sinfo,
squeue) and serves node, partition, GPU and job-queue summaries as JSON and
Prometheus metrics.
"""

__version__ = "0.1.0"
