"""
History module: Entry-spec preparation and commit-chain assembly.

Provides:
- Timestamps: Vectorized per-index date and content assignment
- Partitioner: Parallel sub-range preparation with spooled outputs
- Assembler: Single-writer plumbing-based chain extension
"""

from committer.history.timestamps import EntryArrays, compute_entries, job_seed
from committer.history.partitioner import (
    WorkerPool,
    Partition,
    PartitionJob,
    prepare_partition,
    split_range,
)
from committer.history.assembler import HistoryAssembler, AssemblyResult

__all__ = [
    # Timestamps
    "EntryArrays",
    "compute_entries",
    "job_seed",
    # Partitioner
    "WorkerPool",
    "Partition",
    "PartitionJob",
    "prepare_partition",
    "split_range",
    # Assembler
    "HistoryAssembler",
    "AssemblyResult",
]
