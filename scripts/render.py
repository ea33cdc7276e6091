#!/usr/bin/env python3
"""Render the DaemonSet (and optionally a Router) generated for a Network."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

import yaml

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from ndn_operator.daemonset import generate  # noqa: E402
from ndn_operator.resources import (  # noqa: E402
    DEFAULT_UDP_UNICAST_PORT,
    Network,
    build_owned_router,
)


LOG = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "network",
        type=Path,
        help="Path to a Network manifest (YAML)",
    )
    parser.add_argument(
        "--image",
        default="ghcr.io/named-data/ndn-operator:latest",
        help="Controller image used by the init and sidecar containers",
    )
    parser.add_argument(
        "--service-account",
        default="ndn-operator",
        help="Service account the DaemonSet pods run as",
    )
    parser.add_argument("--router", help="Also render a Router with this name")
    parser.add_argument("--node", help="Node name for the rendered Router")
    parser.add_argument("--ip4", help="IPv4 address of the rendered Router")
    parser.add_argument("--ip6", help="IPv6 address of the rendered Router")
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write the manifests here instead of stdout",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args()


def load_network(path: Path) -> Network:
    with path.open() as fh:
        document = yaml.safe_load(fh)
    metadata = document.setdefault("metadata", {})
    # Owner references need a uid; a manifest that was never applied has none.
    metadata.setdefault("uid", "00000000-0000-0000-0000-000000000000")
    return Network.from_dict(document)


def render(args: argparse.Namespace, network: Network) -> List[Dict[str, Any]]:
    documents = [generate(network, args.image, args.service_account)]
    if args.router:
        if not args.node:
            raise SystemExit("--router requires --node")
        router = build_owned_router(
            network,
            args.router,
            args.node,
            ip4=args.ip4,
            ip6=args.ip6,
            udp_unicast_port=network.spec.udp_unicast_port or DEFAULT_UDP_UNICAST_PORT,
        )
        documents.append(router.to_dict())
    return documents


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    network = load_network(args.network)
    documents = render(args, network)
    text = yaml.safe_dump_all(documents, sort_keys=False)

    if args.output:
        args.output.write_text(text)
        LOG.info("Rendered %d manifests to %s", len(documents), args.output)
    else:
        sys.stdout.write(text)


if __name__ == "__main__":
    main()
