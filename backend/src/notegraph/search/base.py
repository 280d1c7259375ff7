"""Search channel protocol definitions for notegraph.

The keyword channel is an external collaborator: retrieval only relies on
:class:`KeywordChannelProtocol`, so any full-text index can be plugged in.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class KeywordChannelProtocol(Protocol):
    """Protocol that every keyword channel must satisfy."""

    def search(self, expanded_terms: list[str]) -> dict[int, float]:
        """Score notes against the expanded query terms.

        Parameters
        ----------
        expanded_terms:
            Raw query terms plus their alias and broader expansions.

        Returns
        -------
        dict[int, float]
            ``note_id -> score`` with every score already normalised to
            ``[0.0, 1.0]``.  Notes that do not match are absent.
        """
        ...
