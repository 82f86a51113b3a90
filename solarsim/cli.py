"""Run the solar system simulation and stream positions to the broker.

Usage:
  solarsim
  solarsim --bodies bodies.json --bootstrap-servers kafka:9092
  solarsim --dry-run --max-ticks 10 --tick-interval 0

Broker settings can also come from SOLARSIM_* environment variables
(SOLARSIM_BOOTSTRAP_SERVERS, SOLARSIM_CLIENT_ID, SOLARSIM_SASL_USERNAME, ...).

Exit codes: 0 success, 2 configuration error, 3 broker connection error.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from solarsim import __version__
from solarsim.core.config import (
    BrokerConfig,
    SimulationConfig,
    TopicConfig,
    create_default_bodies,
    load_bodies,
)
from solarsim.core.orchestrator import Orchestrator
from solarsim.dynamics.integrators import INTEGRATORS
from solarsim.errors import BrokerConnectionError, ConfigurationError
from solarsim.streaming.broker import BrokerClient, MemoryBackend

logger = logging.getLogger("solarsim")

EXIT_OK = 0
EXIT_CONFIG = 2
EXIT_CONNECTION = 3


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="solarsim",
        description="Simulate planets and ships and publish their positions.",
    )
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    ap.add_argument("--bodies", help="JSON body definitions (default: built-in preset)")
    ap.add_argument("--bootstrap-servers", help="Broker address list (host:port,...)")
    ap.add_argument("--client-id", help="Producer client id")
    ap.add_argument("--planet-topic", default=TopicConfig.planet_topic)
    ap.add_argument("--ship-topic", default=TopicConfig.ship_topic)
    ap.add_argument("--time-step", type=float, default=1.0,
                    help="Simulated seconds per tick (fixed mode)")
    ap.add_argument("--tick-interval", type=float, default=1.0,
                    help="Wall seconds between ticks, 0 to run unpaced")
    ap.add_argument("--timestep-mode", choices=("fixed", "wall_clock"), default="fixed")
    ap.add_argument("--time-scale", type=float, default=1.0,
                    help="Simulated seconds per wall second (wall_clock mode)")
    ap.add_argument("--integrator", choices=sorted(INTEGRATORS), default="kinematic")
    ap.add_argument("--max-ticks", type=int, default=None, help="Stop after N ticks")
    ap.add_argument("--flush-timeout", type=float, default=5.0,
                    help="Seconds to wait for pending messages at shutdown")
    ap.add_argument("--dry-run", action="store_true",
                    help="Do not connect to a broker; log messages instead")
    ap.add_argument("--log-level", default="INFO",
                    choices=("DEBUG", "INFO", "WARNING", "ERROR"))
    return ap


def build_config(args: argparse.Namespace) -> SimulationConfig:
    broker = BrokerConfig.from_env(
        bootstrap_servers=args.bootstrap_servers,
        client_id=args.client_id,
    )
    return SimulationConfig(
        time_step_seconds=args.time_step,
        tick_interval_seconds=args.tick_interval,
        timestep_mode=args.timestep_mode,
        time_scale=args.time_scale,
        integrator=args.integrator,
        flush_timeout_seconds=args.flush_timeout,
        topics=TopicConfig(planet_topic=args.planet_topic, ship_topic=args.ship_topic),
        broker=broker,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )

    try:
        config = build_config(args)
        bodies = load_bodies(args.bodies) if args.bodies else create_default_bodies()
    except ConfigurationError as e:
        print(f"solarsim: configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    backend = MemoryBackend(max_messages=1000) if args.dry_run else None
    client = BrokerClient(config.broker, backend=backend)
    orchestrator = Orchestrator(config, bodies=bodies, client=client)

    try:
        orchestrator.startup()
    except ConfigurationError as e:
        print(f"solarsim: configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except BrokerConnectionError as e:
        print(f"solarsim: cannot connect to broker: {e}", file=sys.stderr)
        return EXIT_CONNECTION

    orchestrator.install_signal_handlers()
    try:
        orchestrator.run(max_ticks=args.max_ticks)
    finally:
        orchestrator.shutdown()
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
