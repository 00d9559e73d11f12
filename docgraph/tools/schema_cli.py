# mypy: ignore-errors
"""
Schema CLI tool for DocGraph.

This tool manages entity capability tables:
- snapshot: Export registered entity types to JSON
- check: Verify stored documents stay loadable against a baseline
- provision: Create collections and indexes for every registered type

Usage:
    docgraph-schema snapshot --module myapp.models > schema.lock.json
    docgraph-schema check --module myapp.models --baseline schema.lock.json
    docgraph-schema provision --module myapp.models

Invariants:
    - Breaking changes cause non-zero exit code
    - Schema files are deterministic (sorted JSON)
    - A change is breaking when documents written before it fail to load after it

How to change safely:
    - Add new commands, don't modify existing ones
    - Keep output format stable for CI parsing
"""

from __future__ import annotations

import argparse
import asyncio
import importlib
import json
import logging
import sys
from typing import Any

from ..config import Settings
from ..schema import SchemaRegistry, get_registry
from ..session import DocGraph

logger = logging.getLogger(__name__)

# Field kinds whose wire key must be present in every stored document
_KEYED_KINDS = ("scalar", "identity", "owned_single", "owned_sequence")


class SchemaCLI:
    """CLI tool for schema management.

    Example:
        >>> cli = SchemaCLI()
        >>> cli.snapshot(registry)  # JSON string
        >>> cli.check(registry, "schema.lock.json")  # (ok, issues)
    """

    def snapshot(self, registry: SchemaRegistry) -> str:
        """Export schema to JSON.

        Args:
            registry: Registry to export

        Returns:
            JSON string representation
        """
        output = {
            "version": 1,
            "fingerprint": registry.fingerprint or "unfrozen",
            "schema": registry.to_dict(),
        }
        return json.dumps(output, indent=2, sort_keys=True)

    def check(self, registry: SchemaRegistry, baseline_path: str) -> tuple[bool, list[str]]:
        """Check that documents written under the baseline still load.

        Args:
            registry: Current registry
            baseline_path: Path to baseline snapshot JSON

        Returns:
            Tuple of (is_compatible, list_of_issues)
        """
        with open(baseline_path) as f:
            baseline_data = json.load(f)

        # Handle both raw schema and wrapped format
        baseline = baseline_data.get("schema", baseline_data)
        return self.compare(baseline, registry.to_dict())

    def compare(self, old: dict[str, Any], new: dict[str, Any]) -> tuple[bool, list[str]]:
        """Compare two schema dictionaries."""
        old_types = {t["name"]: t for t in old.get("entity_types", [])}
        new_types = {t["name"]: t for t in new.get("entity_types", [])}
        issues: list[str] = []

        for name, new_type in sorted(new_types.items()):
            old_type = old_types.get(name)
            if old_type is None:
                continue
            old_fields = {f["name"]: f for f in old_type["fields"]}
            for new_field in new_type["fields"]:
                path = f"{name}.{new_field['name']}"
                old_field = old_fields.get(new_field["name"])
                if old_field is None:
                    if new_field["kind"] in _KEYED_KINDS:
                        issues.append(f"{path}: added; existing documents lack its key")
                    continue
                for attr in ("kind", "scalar_type", "child_type"):
                    if old_field.get(attr) != new_field.get(attr):
                        issues.append(
                            f"{path}: {attr} changed from {old_field.get(attr)!r} "
                            f"to {new_field.get(attr)!r}"
                        )

        return len(issues) == 0, issues

    async def provision(self, registry: SchemaRegistry, settings: Settings) -> list[str]:
        """Provision every registered type.

        Returns:
            Names of the provisioned entity collections
        """
        graph = await DocGraph.connect(settings, registry=registry)
        try:
            if graph.frozen:
                logger.warning("DOCGRAPH_FROZEN is set; nothing will be provisioned")
            names = []
            for entity_type in registry.types():
                await graph.ensure_schema(entity_type.cls)
                names.append(entity_type.name)
            return names
        finally:
            await graph.close()


def _load_registry(module_path: str | None = None) -> SchemaRegistry:
    """Load the registry populated by importing a module.

    Args:
        module_path: Python module path containing entity definitions

    Returns:
        The module's ``registry`` if it defines one, else the global registry
    """
    if module_path:
        module = importlib.import_module(module_path)
        if isinstance(getattr(module, "registry", None), SchemaRegistry):
            return module.registry
    return get_registry()


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for schema tool."""
    parser = argparse.ArgumentParser(description="DocGraph schema management tool")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # snapshot command
    snapshot_parser = subparsers.add_parser("snapshot", help="Export schema to JSON")
    snapshot_parser.add_argument("--module", help="Python module containing entity definitions")
    snapshot_parser.add_argument("--output", "-o", help="Output file (default: stdout)")

    # check command
    check_parser = subparsers.add_parser("check", help="Check compatibility with baseline")
    check_parser.add_argument(
        "--baseline", "-b", required=True, help="Path to baseline schema JSON"
    )
    check_parser.add_argument("--module", help="Python module containing entity definitions")

    # provision command
    provision_parser = subparsers.add_parser(
        "provision", help="Create collections and indexes for all entity types"
    )
    provision_parser.add_argument("--module", help="Python module containing entity definitions")

    args = parser.parse_args(argv)
    cli = SchemaCLI()
    registry = _load_registry(args.module)

    if args.command == "snapshot":
        if registry.fingerprint is None:
            registry.freeze()

        output = cli.snapshot(registry)

        if args.output:
            with open(args.output, "w") as f:
                f.write(output)
            print(f"Schema exported to {args.output}", file=sys.stderr)
        else:
            print(output)

    elif args.command == "check":
        is_compatible, issues = cli.check(registry, args.baseline)

        if is_compatible:
            print("Schema is compatible with baseline")
            sys.exit(0)
        else:
            print(f"Schema compatibility check FAILED with {len(issues)} breaking change(s):")
            for issue in issues:
                print(f"  - {issue}")
            sys.exit(1)

    elif args.command == "provision":
        names = asyncio.run(cli.provision(registry, Settings()))
        print(f"Provisioned {len(names)} entity type(s): {', '.join(names)}")


if __name__ == "__main__":
    main()
