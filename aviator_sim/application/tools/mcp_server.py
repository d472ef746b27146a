# aviator_sim/application/tools/mcp_server.py
# MCP server exposing the game tools to chat assistants.
# Run: mcp dev aviator_sim/application/tools/mcp_server.py   (or: aviator-mcp)

import os
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field
from mcp.server.fastmcp import FastMCP

from aviator_sim.application.tools.game_tools import GameTools
from aviator_sim.infrastructure.config.loaders.yaml_loader import YamlConfigLoader
from aviator_sim.infrastructure.config.validators.schema_validator import SchemaValidator
from aviator_sim.infrastructure.logging.log_manager import initialize_logging
from aviator_sim.main import DEFAULT_CONFIG_PATH, GAME_SCHEMA_PATH

mcp = FastMCP("aviator-game")
_tools: Optional[GameTools] = None


def get_tools() -> GameTools:
    """Lazily build the shared tool service from the default configuration."""
    global _tools
    if _tools is None:
        config_path = os.environ.get("AVIATOR_CONFIG", DEFAULT_CONFIG_PATH)
        config = YamlConfigLoader(SchemaValidator()).load_file(config_path, GAME_SCHEMA_PATH)
        _tools = GameTools(config)
    return _tools


# ----------------------------
# Schemas
# ----------------------------
class MechanicsTestInput(BaseModel):
    test_type: Literal["multiplier_calculation", "crash_timings", "leaderboard", "all"] = Field(
        "all", description="Which mechanics to check"
    )
    iterations: int = Field(10, ge=1, le=10000, description="Number of test iterations")
    seed: Optional[int] = Field(None, description="Optional RNG seed")


class AnalyticsInput(BaseModel):
    report_type: Literal["player_stats", "performance", "comprehensive"] = Field(
        "comprehensive", description="Type of analytics report"
    )
    rounds: int = Field(100, ge=1, le=100000, description="Rounds per simulated session")
    sessions: int = Field(1, ge=1, le=100, description="Number of simulated sessions")
    seed: Optional[int] = Field(None, description="Optional RNG seed")


# ----------------------------
# Tools
# ----------------------------
@mcp.tool()
def test_game_mechanics(data: MechanicsTestInput) -> Dict[str, Any]:
    """
    Check crash multipliers, crash timings and leaderboard ordering.
    """
    return get_tools().test_game_mechanics(data.test_type, data.iterations, seed=data.seed)


@mcp.tool()
def generate_analytics(data: AnalyticsInput) -> Dict[str, Any]:
    """
    Simulate auto-play sessions and report player stats and performance.
    """
    return get_tools().generate_analytics(
        data.report_type, rounds=data.rounds, sessions=data.sessions, seed=data.seed
    )


@mcp.tool()
def get_leaderboard(limit: int = 15) -> List[Dict[str, Any]]:
    """
    Top players by coins.
    """
    return get_tools().get_leaderboard(limit)


def main():
    initialize_logging({"level": "WARNING", "console": False})
    mcp.run()


if __name__ == "__main__":
    main()
