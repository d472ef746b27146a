# aviator_sim/application/analysis/report_generator.py
import logging
import json
import os
import time
from typing import Dict, List, Any, Optional

import numpy as np


def settlement_multipliers(simulation_results: Dict[str, Any], outcome: Optional[str] = None) -> List[float]:
    """Collect settlement multipliers over all sessions, optionally for one outcome."""
    return [
        st["multiplier"]
        for session in simulation_results.get("sessions", [])
        for st in session.get("settlements", [])
        if outcome is None or st["type"] == outcome
    ]


def multiplier_distribution(multipliers: List[float], bins: int = 10) -> Dict[str, Any]:
    """
    Histogram and summary statistics of settlement multipliers.

    Returns:
        Dictionary with count, mean, median, percentiles and bin counts
    """
    if not multipliers:
        return {"count": 0, "bins": [], "counts": []}

    values = np.asarray(multipliers, dtype=float)
    counts, edges = np.histogram(values, bins=bins)
    return {
        "count": int(values.size),
        "mean": float(np.mean(values)),
        "median": float(np.median(values)),
        "min": float(np.min(values)),
        "max": float(np.max(values)),
        "p90": float(np.percentile(values, 90)),
        "bins": [round(float(edge), 3) for edge in edges],
        "counts": [int(count) for count in counts]
    }


class ReportGenerator:
    """
    Generates reports from simulation results.
    """
    def __init__(self, output_dir: str = "reports"):
        """
        Initialize the report generator.

        Args:
            output_dir: Directory for storing reports
        """
        self.logger = logging.getLogger("application.analysis.report")
        self.output_dir = output_dir

        os.makedirs(output_dir, exist_ok=True)

    def generate_summary_report(self, simulation_results: Dict[str, Any]) -> str:
        """
        Generate a summary report of simulation results.

        Returns:
            Path to the generated report file
        """
        self.logger.info("Generating summary report")

        report = {
            "generated_at": time.strftime("%Y-%m-%d %H:%M:%S"),
            "simulation_summary": self._create_simulation_summary(simulation_results),
            "multiplier_distribution": {
                "wins": multiplier_distribution(settlement_multipliers(simulation_results, "win")),
                "crashes": multiplier_distribution(settlement_multipliers(simulation_results, "crash"))
            },
            "leaderboard": simulation_results.get("leaderboard", [])
        }

        return self._write(report, "simulation_report")

    def generate_detailed_report(self, simulation_results: Dict[str, Any]) -> str:
        """
        Generate a detailed report including every session's settlements.

        Returns:
            Path to the generated report file
        """
        self.logger.info("Generating detailed report")

        report = {
            "generated_at": time.strftime("%Y-%m-%d %H:%M:%S"),
            "simulation": {
                "duration": simulation_results.get("duration", 0),
                "session_count": len(simulation_results.get("sessions", [])),
                "start_time": simulation_results.get("start_time"),
                "end_time": simulation_results.get("end_time")
            },
            "summary": simulation_results.get("summary", {}),
            "sessions": simulation_results.get("sessions", []),
            "leaderboard": simulation_results.get("leaderboard", [])
        }

        return self._write(report, "detailed_report")

    def plot_multiplier_histogram(self, simulation_results: Dict[str, Any], bins: int = 30) -> Optional[str]:
        """
        Save a histogram of settlement multipliers (wins and crashes) as PNG.

        Returns:
            Path to the image, or None when there is nothing to plot
        """
        wins = settlement_multipliers(simulation_results, "win")
        crashes = settlement_multipliers(simulation_results, "crash")
        if not wins and not crashes:
            self.logger.warning("No settlements to plot")
            return None

        # 无显示环境下也能出图
        import matplotlib
        matplotlib.use("Agg")
        import matplotlib.pyplot as plt

        edges = np.histogram_bin_edges(np.asarray(wins + crashes, dtype=float), bins=bins)
        fig, ax = plt.subplots(figsize=(10, 6))
        ax.hist(wins, bins=edges, alpha=0.7, label=f"Cashed out ({len(wins)})", color="green")
        ax.hist(crashes, bins=edges, alpha=0.7, label=f"Crashed ({len(crashes)})", color="red")
        ax.set_xlabel("Multiplier")
        ax.set_ylabel("Rounds")
        ax.set_title("Settlement multipliers")
        ax.legend()
        ax.grid(True, alpha=0.3)

        timestamp = time.strftime("%Y%m%d-%H%M%S")
        filepath = os.path.join(self.output_dir, f"multiplier_histogram_{timestamp}.png")
        fig.savefig(filepath, dpi=100, bbox_inches="tight")
        plt.close(fig)

        self.logger.info(f"Histogram saved to {filepath}")
        return filepath

    def _write(self, report: Dict[str, Any], prefix: str) -> str:
        timestamp = time.strftime("%Y%m%d-%H%M%S")
        filepath = os.path.join(self.output_dir, f"{prefix}_{timestamp}.json")

        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(report, f, indent=2)

        self.logger.info(f"Report saved to {filepath}")
        return filepath

    def _create_simulation_summary(self, simulation_results: Dict[str, Any]) -> Dict[str, Any]:
        sessions = simulation_results.get("sessions", [])
        summary = dict(simulation_results.get("summary", {}))

        rounds = [s.get("rounds_played", 0) for s in sessions]
        summary.update({
            "session_count": len(sessions),
            "average_rounds_per_session": sum(rounds) / len(rounds) if rounds else 0,
            "simulation_duration": simulation_results.get("duration", 0),
            "final_balances": {s["session_id"]: s["final_balance"] for s in sessions}
        })
        return summary
