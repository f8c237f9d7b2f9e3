"""Binary upgrade pipeline.

Key Components:
    - UpgradePipeline: Stage, validate and install fetched binaries
    - BinaryInstaller: Protocol for platform specific file handling
    - PosixInstaller: BinaryInstaller for POSIX systems
    - StagedBinary: A fetched binary waiting for validation
    - binary_id: Content based binary identity
    - run_sanity_check: Self test a binary must pass before cutover
"""

from ._identity import binary_id, file_binary_id
from ._installer import (
    BinaryInstaller,
    PosixInstaller,
    StagedBinary,
    default_installer,
)
from ._pipeline import UpgradePipeline
from ._sanity import answer_sanity_check, run_sanity_check

__all__ = [
    "BinaryInstaller",
    "PosixInstaller",
    "StagedBinary",
    "UpgradePipeline",
    "answer_sanity_check",
    "binary_id",
    "default_installer",
    "file_binary_id",
    "run_sanity_check",
]
