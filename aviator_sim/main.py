# aviator_sim/main.py
import os
import sys
import logging
import argparse
import time

from aviator_sim.infrastructure.config.loaders.yaml_loader import YamlConfigLoader, ConfigError
from aviator_sim.infrastructure.config.validators.schema_validator import SchemaValidator
from aviator_sim.infrastructure.logging.log_manager import initialize_logging
from aviator_sim.infrastructure.rng.rng_provider import RNGProvider
from aviator_sim.infrastructure.concurrency.task_executor import TaskExecutor, ExecutionMode

from aviator_sim.application.simulation.coordinator import SimulationCoordinator, create_document_store
from aviator_sim.application.analysis.report_generator import ReportGenerator

PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_CONFIG_PATH = os.path.join(PACKAGE_DIR, "application", "config", "default_game.yaml")
GAME_SCHEMA_PATH = os.path.join(PACKAGE_DIR, "infrastructure", "config", "schemas", "game_schema.json")


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Aviator crash game simulator")

    parser.add_argument(
        "-c", "--config",
        default=DEFAULT_CONFIG_PATH,
        help="Game configuration file, merged over the packaged defaults"
    )
    parser.add_argument("--rounds", type=int, help="Rounds per session")
    parser.add_argument("--bet", type=int, help="Bet per round in coins")
    parser.add_argument("--sessions", type=int, help="Number of isolated sessions")
    parser.add_argument("--seed", type=int, help="RNG seed for reproducible runs")
    parser.add_argument(
        "--storage",
        choices=["memory", "local", "s3"],
        help="Where balances, stats and the leaderboard are kept"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output"
    )
    parser.add_argument(
        "--no-concurrency",
        action="store_true",
        help="Run sessions one after another"
    )
    parser.add_argument(
        "--log-mode",
        choices=["all", "app", "domain", "none"],
        default=None,
        help="Select logging mode: 'all'=verbose, 'app'=application only, 'domain'=domain only, 'none'=minimal"
    )

    return parser.parse_args(argv)


def apply_overrides(config, args):
    """命令行参数覆盖配置文件中的值。"""
    simulation = config.setdefault("simulation", {})
    if args.rounds is not None:
        simulation["rounds"] = args.rounds
    if args.bet is not None:
        simulation["bet"] = args.bet
    if args.sessions is not None:
        simulation["sessions"] = args.sessions
    if args.no_concurrency:
        simulation["use_concurrency"] = False
    if args.seed is not None:
        config.setdefault("rng", {})["seed"] = args.seed
    if args.storage is not None:
        config.setdefault("storage", {})["backend"] = args.storage
    return config


def apply_log_mode(config, args):
    log_config = config.get("logging", {}) or {}

    # 各模式给出完整的 loggers 映射，替换配置文件中的层级设置
    if args.log_mode == "all":
        log_config["level"] = "DEBUG"
        log_config["console_level"] = "DEBUG"
        log_config["loggers"] = {}
    elif args.log_mode == "app":
        # 只显示 application 层日志
        log_config["level"] = "WARNING"
        log_config["console_level"] = "DEBUG"
        log_config["loggers"] = {
            "domain": {"level": "WARNING"},
            "application": {"level": "DEBUG"},
            "infrastructure": {"level": "WARNING"}
        }
    elif args.log_mode == "domain":
        # 只显示 domain 层日志
        log_config["level"] = "WARNING"
        log_config["console_level"] = "DEBUG"
        log_config["loggers"] = {
            "domain": {"level": "DEBUG"},
            "application": {"level": "WARNING"},
            "infrastructure": {"level": "WARNING"}
        }
    elif args.log_mode == "none":
        log_config["level"] = "WARNING"
        log_config["console_level"] = "WARNING"
        log_config["loggers"] = {}

    if args.verbose:
        log_config["level"] = "DEBUG"
        log_config["console_level"] = "DEBUG"

    config["logging"] = log_config
    return config


def main(argv=None):
    """Main entry point for the crash game simulator."""
    args = parse_arguments(argv)
    start_time = time.time()

    config_loader = YamlConfigLoader(SchemaValidator())
    try:
        layers = [DEFAULT_CONFIG_PATH]
        if os.path.abspath(args.config) != DEFAULT_CONFIG_PATH:
            layers.append(args.config)
        config = config_loader.load_layered(layers, GAME_SCHEMA_PATH)
        print(f"Loaded configuration from {args.config}")
    except ConfigError as e:
        print(f"Error loading configuration: {e}")
        return 1

    config = apply_overrides(config, args)
    config = apply_log_mode(config, args)

    initialize_logging(config.get("logging", {}), force=True)
    logger = logging.getLogger("application.main")
    logger.info("Aviator simulator starting")

    sim_config = config.get("simulation", {})
    if sim_config.get("use_concurrency", False):
        task_executor = TaskExecutor(ExecutionMode.MULTITHREAD, sim_config.get("max_workers"))
    else:
        task_executor = TaskExecutor(ExecutionMode.SEQUENTIAL)

    try:
        document_store = create_document_store(config.get("storage", {}))
        coordinator = SimulationCoordinator(RNGProvider(), task_executor, document_store=document_store)

        logger.info("Starting simulation")
        results = coordinator.run_simulation(config)
        logger.info("Simulation completed")

        analysis_config = config.get("analysis", {})
        if analysis_config.get("generate_reports", True):
            report_generator = ReportGenerator(analysis_config.get("output_dir", "reports"))
            summary_path = report_generator.generate_summary_report(results)
            detailed_path = report_generator.generate_detailed_report(results)
            print(f"Reports: {summary_path}, {detailed_path}")
            if analysis_config.get("plot_histogram", False):
                plot_path = report_generator.plot_multiplier_histogram(results)
                if plot_path:
                    print(f"Histogram: {plot_path}")

        summary = results["summary"]
        print("\nSimulation Summary:")
        print(f"- Sessions: {summary['session_count']}")
        print(f"- Rounds: {summary['total_rounds']} (wins: {summary['total_wins']}, "
              f"win rate: {summary['win_rate']:.1%})")
        print(f"- Total profit: {summary['total_profit']}")
        print(f"- Balance change: {summary['balance_change']:+d}")
        print(f"- Highest multiplier: {summary['highest_multiplier']:.2f}x")
        print(f"- Return to player: {summary['return_to_player']:.2%}")

        if results["leaderboard"]:
            print("\nLeaderboard:")
            for i, entry in enumerate(results["leaderboard"][:5]):
                print(f"{i + 1}. {entry['name']} - {entry['coins']} coins")

        elapsed_time = time.time() - start_time
        print(f"\nTotal execution time: {elapsed_time:.2f} seconds")
        return 0

    except KeyboardInterrupt:
        logger.info("Simulation interrupted by user")
        return 130
    except Exception as e:
        logger.exception(f"Error during simulation: {str(e)}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
