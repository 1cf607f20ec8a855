"""
Context Builder Protocol Definitions

Protocols are the foundation layer with minimal dependencies on other ctxbuilder modules.
"""

from typing import Protocol, TYPE_CHECKING, runtime_checkable

if TYPE_CHECKING:
    from .datacls.assembly import Assembly, AssemblySource


# ============================================================================
# Assembly Resolver Protocol
# ============================================================================

@runtime_checkable
class AssemblyResolverProtocol(Protocol):
    """
    Protocol for assembly resolvers.

    A resolver turns the declarative assembly configuration into a concrete
    list of (source, dest) pairs. It must be a pure function of its input:
    the production pass and the tracking pass call it independently and
    expect the same destinations.
    """

    def resolve(self, source: "AssemblySource") -> "Assembly":
        """
        Resolve the assembly described by `source`.

        Args:
            source: Directories, assembly configuration and the pass id

        Returns:
            The resolved assembly, its id set to the pass id

        Raises:
            AssemblyResolutionError: if the assembly cannot be produced
        """
        ...
