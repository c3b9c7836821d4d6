"""
Client for the ccusage CLI.

Runs `ccusage blocks --active --json` and validates the first block with
pydantic. The block is the upstream snapshot every refresh cycle starts
from.
"""

from __future__ import annotations

import json
import logging
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from claude_live.clients.command_runner import CommandRunner
from claude_live.core.errors import MalformedResponseError

logger = logging.getLogger(__name__)


# =============================================================================
# Snapshot models
# =============================================================================


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TokenCounts(_CamelModel):
    input_tokens: int = Field(0, alias="inputTokens")
    output_tokens: int = Field(0, alias="outputTokens")
    cache_creation_input_tokens: int = Field(0, alias="cacheCreationInputTokens")
    cache_read_input_tokens: int = Field(0, alias="cacheReadInputTokens")


class Projection(_CamelModel):
    remaining_minutes: float = Field(alias="remainingMinutes")
    total_tokens: Optional[int] = Field(None, alias="totalTokens")
    total_cost: Optional[float] = Field(None, alias="totalCost")


class BurnRate(_CamelModel):
    tokens_per_minute: float = Field(alias="tokensPerMinute")
    cost_per_hour: Optional[float] = Field(None, alias="costPerHour")


class TokenLimitStatus(_CamelModel):
    limit: Optional[int] = None
    projected_usage: Optional[int] = Field(None, alias="projectedUsage")
    percent_used: Optional[float] = Field(None, alias="percentUsed")
    status: Optional[str] = None


class UsageBlock(_CamelModel):
    """One ccusage billing block (the upstream snapshot)."""
    is_active: bool = Field(alias="isActive")
    total_tokens: int = Field(alias="totalTokens")
    cost_usd: float = Field(alias="costUSD")
    projection: Projection
    burn_rate: BurnRate = Field(alias="burnRate")
    token_counts: Optional[TokenCounts] = Field(None, alias="tokenCounts")
    models: List[str] = Field(default_factory=list)
    entries: Optional[int] = None
    start_time: Optional[str] = Field(None, alias="startTime")
    end_time: Optional[str] = Field(None, alias="endTime")
    token_limit_status: Optional[TokenLimitStatus] = Field(None, alias="tokenLimitStatus")


class _BlocksResponse(_CamelModel):
    blocks: List[UsageBlock] = Field(default_factory=list)


# =============================================================================
# Client
# =============================================================================


class UsageClient:
    """Fetches the active usage block from ccusage."""

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        command: str = "ccusage",
        timeout: float = 15.0,
    ) -> None:
        self.runner = runner or CommandRunner(default_timeout=timeout)
        self.command = command
        self.timeout = timeout

    def build_command(self, token_limit: Optional[int] = None) -> List[str]:
        argv = [self.command, "blocks", "--active", "--json"]
        if token_limit:
            argv.extend(["--token-limit", str(token_limit)])
        return argv

    async def fetch_active_block(self, token_limit: Optional[int] = None) -> Optional[UsageBlock]:
        """
        Return the active block, or None when ccusage reports no active block.

        Raises:
            CommandNotFoundError / CommandTimeoutError / CommandFailedError:
                ccusage could not be run
            MalformedResponseError: output is not JSON or lacks required fields
        """
        result = await self.runner.run(self.build_command(token_limit), timeout=self.timeout)
        return self.parse(result.stdout)

    @staticmethod
    def parse(output: str) -> Optional[UsageBlock]:
        try:
            payload = json.loads(output)
        except json.JSONDecodeError as e:
            raise MalformedResponseError(f"ccusage returned non-JSON output: {e}", raw=output[:200]) from e

        if not isinstance(payload, dict):
            raise MalformedResponseError("ccusage output is not a JSON object", raw=output[:200])

        try:
            response = _BlocksResponse.model_validate(payload)
        except ValidationError as e:
            raise MalformedResponseError(
                f"ccusage block is missing required fields: {e.error_count()} problem(s)",
                raw=output[:200],
            ) from e

        if not response.blocks:
            logger.debug("[Upstream] No active block reported")
            return None
        return response.blocks[0]
