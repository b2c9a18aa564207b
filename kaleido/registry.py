from __future__ import annotations

from typing import Dict, Iterator, Optional

from .ast import Prototype


class PrototypeRegistry:
    """Function signatures known to a compile session.

    Each top-level construct is lowered into its own LLVM module, so a function
    defined in an earlier module has to be re-declared in every later module that
    calls it. The registry remembers the latest prototype per name for exactly
    that purpose. Entries are inserted or overwritten, never removed.
    """

    def __init__(self) -> None:
        self._protos: Dict[str, Prototype] = {}

    def declare(self, proto: Prototype) -> None:
        self._protos[proto.name] = proto

    def lookup(self, name: str) -> Optional[Prototype]:
        return self._protos.get(name)

    def names(self) -> Iterator[str]:
        return iter(sorted(self._protos))

    def __contains__(self, name: object) -> bool:
        return name in self._protos

    def __len__(self) -> int:
        return len(self._protos)
