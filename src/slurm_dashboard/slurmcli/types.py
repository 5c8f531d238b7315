"""Raw row types for Slurm command-line output.

Pydantic models representing one line of scontrol, sinfo or squeue output
with minimal processing. Each field declares its default, so a line missing
a field validates to the default instead of failing.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .parsing import leading_int

PARTITION_COLUMNS = ("partition", "avail", "timelimit", "nodes", "state")
JOB_COLUMNS = (
    "job_id",
    "name",
    "user",
    "state",
    "time",
    "nodes",
    "cpus",
    "partition",
    "reason",
)


class RawNodeData(BaseModel):
    """Raw node data from ``scontrol show node --oneliner``.

    Validated from the ``Key=Value`` mapping of one line, so field aliases
    are the scontrol key names. Memory values are in MB.
    """

    model_config = ConfigDict(populate_by_name=True)

    # Core identification
    name: str | None = Field(None, alias="NodeName")

    # State information
    state: str | None = Field(None, alias="State")

    # CPU information
    cpus: int = Field(0, alias="CPUTot")
    alloc_cpus: int = Field(0, alias="CPUAlloc")

    # Memory information (in MB)
    real_memory: int = Field(0, alias="RealMemory")
    alloc_memory: int = Field(0, alias="AllocMem")

    # GRES (Generic Resources like GPUs)
    gres: str | None = Field(None, alias="Gres")

    # Membership and tags, comma separated
    partitions: str | None = Field(None, alias="Partitions")
    features: str | None = Field(None, alias="AvailableFeatures")

    @field_validator(
        "cpus",
        "alloc_cpus",
        "real_memory",
        "alloc_memory",
        mode="before",
    )
    @classmethod
    def _leading_digits(cls, value: object) -> int:
        return leading_int(value)


class RawPartitionData(BaseModel):
    """Raw partition row from ``sinfo -o "%P %a %l %D %t"``."""

    partition: str
    avail: str
    timelimit: str
    nodes: int = 0
    state: str

    @field_validator("nodes", mode="before")
    @classmethod
    def _leading_digits(cls, value: object) -> int:
        return leading_int(value)


class RawJobData(BaseModel):
    """Raw job row from ``squeue -o "%i %j %u %t %M %D %C %P %R"``.

    ``reason`` holds the rest of the line and is empty when the row has
    only eight columns.
    """

    job_id: str
    name: str
    user: str
    state: str
    time: str
    nodes: int = 0
    cpus: int = 0
    partition: str
    reason: str = ""

    @field_validator("nodes", "cpus", mode="before")
    @classmethod
    def _leading_digits(cls, value: object) -> int:
        return leading_int(value)
