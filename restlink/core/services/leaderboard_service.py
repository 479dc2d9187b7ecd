"""Leaderboard submissions and queries."""

from typing import Any, Dict, Optional

from restlink.core.client import ApiClient
from restlink.core.services._validation import require_number, require_positive_int, require_text
from restlink.domain.models.result import Result


class LeaderboardService:
    """Submits scores and queries leaderboard rankings."""

    def __init__(self, client: ApiClient):
        self.client = client

    async def submit_score(self, board: str, score: float, metadata: Optional[Dict[str, Any]] = None) -> Result:
        invalid = require_text(board, "board") or require_number(score, "score")
        if invalid:
            return invalid
        body: Dict[str, Any] = {"score": score}
        if metadata:
            body["metadata"] = metadata
        return await self.client.call("leaderboard_submit", "POST", params={"board": board}, body=body)

    async def top(self, board: str, limit: int = 10) -> Result:
        invalid = require_text(board, "board") or require_positive_int(limit, "limit")
        if invalid:
            return invalid
        path = self.client.endpoint("leaderboard_top", board=board)
        return await self.client.execute("GET", f"{path}?limit={limit}")

    async def around_user(self, board: str, user_id: Optional[str] = None, radius: int = 5) -> Result:
        """Entries surrounding `user_id` (the signed-in user by default)."""
        user_id = user_id or self.client.credentials.user_id
        invalid = (
            require_text(board, "board")
            or require_text(user_id, "user_id")
            or require_positive_int(radius, "radius")
        )
        if invalid:
            return invalid
        path = self.client.endpoint("leaderboard_around", board=board, user_id=user_id)
        return await self.client.execute("GET", f"{path}?radius={radius}")
