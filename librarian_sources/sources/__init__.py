"""Module sources (forge, git, svn)."""

from .forge import ForgeRepo
from .forge import ForgeSource
from .git import GitRepository
from .git import GitSource
from .protocol import ModuleSource
from .resolver import source_from_lock
from .resolver import source_from_spec
from .svn import SvnCheckout
from .svn import SvnSource

__all__ = [
    "ModuleSource",
    "ForgeSource",
    "ForgeRepo",
    "GitSource",
    "GitRepository",
    "SvnSource",
    "SvnCheckout",
    "source_from_spec",
    "source_from_lock",
]
