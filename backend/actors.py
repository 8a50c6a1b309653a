from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Actor:
    """The already-authenticated caller of an engine operation.

    An administrator who also plays carries both a player_id and is_admin.
    """

    player_id: Optional[int] = None
    is_admin: bool = False

    def is_player(self, player_id: int) -> bool:
        return self.player_id is not None and self.player_id == player_id
