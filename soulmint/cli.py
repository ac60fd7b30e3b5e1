#!/usr/bin/env python3
"""
SOULMINT CLI

Operator tooling around the mint pipeline: inspect packed dates, rebuild the
public signals a proof must match, verify snarkjs Groth16 proofs, produce
root attestations, and manage configuration.

Usage:
    soulmint [--config FILE] [--format json|yaml|text] <command> <subcommand> [options]

Commands:
    date        Packed YYMMDD date encoding
    signals     Event binding and public-signal reconstruction
    proof       Groth16 proof verification
    root        Root attestation keys and signatures
    config      Configuration management

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

import yaml

from soulmint import __version__


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        return yaml.dump(data, default_flow_style=False)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


def _load_json(path: str) -> Any:
    p = Path(path)
    if not p.exists():
        raise CLIError(f"File not found: {path}")
    try:
        return json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise CLIError(f"Invalid JSON in {path}: {e}") from e


def _parse_int(value: str) -> int:
    return int(value, 0)


class SoulmintCLI:
    """Main CLI application."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="soulmint",
            description="Soulbound credential mint authorizer tooling",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"soulmint {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--config", "-c",
            help="YAML configuration file (default: search soulmint.yaml locations)",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress error messages",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    def _register_commands(self) -> None:
        self._register_date_commands()
        self._register_signals_commands()
        self._register_proof_commands()
        self._register_root_commands()
        self._register_config_commands()

    def _register_date_commands(self) -> None:
        date = self.subparsers.add_parser("date", help="Packed date encoding")
        date_sub = date.add_subparsers(dest="subcommand")

        decode = date_sub.add_parser("decode", help="Decode YYMMDD or packed 0x value")
        decode.add_argument("value", help="e.g. 241209 or 0x323431323039")

        encode = date_sub.add_parser("encode", help="Pack YYMMDD into an integer")
        encode.add_argument("value", nargs="?", default="", help="YYMMDD (empty = 000000)")

    def _register_signals_commands(self) -> None:
        signals = self.subparsers.add_parser("signals", help="Public signal reconstruction")
        signals_sub = signals.add_subparsers(dest="subcommand")

        event_data = signals_sub.add_parser("event-data", help="Event binding for a recipient")
        event_data.add_argument("address", help="Recipient address")
        event_data.add_argument("--deployment", "-d", help="Authorizer deployment address")

        build = signals_sub.add_parser("build", help="Rebuild signals from a mint request")
        build.add_argument("--request", "-r", required=True, help="Mint request JSON file")

    def _register_proof_commands(self) -> None:
        proof = self.subparsers.add_parser("proof", help="Proof verification")
        proof_sub = proof.add_subparsers(dest="subcommand")

        verify = proof_sub.add_parser("verify", help="Verify a snarkjs Groth16 proof")
        verify.add_argument("--vkey", "-k", required=True, help="verification_key.json")
        verify.add_argument("--proof", "-p", required=True, help="proof.json")
        verify.add_argument("--signals", "-s", required=True, help="public.json")

    def _register_root_commands(self) -> None:
        root = self.subparsers.add_parser("root", help="Root attestations")
        root_sub = root.add_subparsers(dest="subcommand")

        root_sub.add_parser("keygen", help="Generate a replicator signing key")

        attest = root_sub.add_parser("attest", help="Sign a root transition")
        attest.add_argument("--private-key", required=True, help="Hex Ed25519 private key")
        attest.add_argument("--root", required=True, type=_parse_int, help="New root")
        attest.add_argument("--timestamp", required=True, type=int, help="Effective timestamp")

    def _register_config_commands(self) -> None:
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        get = config_sub.add_parser("get", help="Get configuration value")
        get.add_argument("path", help="Config path (e.g., policy.token_id)")

        config_sub.add_parser("show", help="Show all configuration")
        config_sub.add_parser("validate", help="Validate configuration")
        config_sub.add_parser("schema", help="Export configuration schema")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        try:
            from soulmint.config import get_config_manager
            manager = get_config_manager()
            if parsed.config:
                manager.load_from_file(parsed.config)
            else:
                manager.load_defaults()

            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            if isinstance(result, dict) and result.get("valid") is False:
                return 1
            return 0

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except Exception as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 1

    def _dispatch(self, args: argparse.Namespace) -> Any:
        cmd = args.command.replace("-", "_")
        subcmd = getattr(args, "subcommand", None)
        if subcmd:
            subcmd = subcmd.replace("-", "_")

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {args.command} {subcmd or ''}".strip(), exit_code=2)

        return handler(args)

    # Date handlers
    def _handle_date_decode(self, args: argparse.Namespace) -> Any:
        from soulmint.dates import decode_date, packed_to_int

        value = args.value
        packed = _parse_int(value) if value.lower().startswith("0x") else value
        timestamp = decode_date(packed)
        return {
            "packed": hex(packed_to_int(packed)),
            "timestamp": timestamp,
            "utc": datetime.fromtimestamp(timestamp, tz=timezone.utc).date().isoformat(),
        }

    def _handle_date_encode(self, args: argparse.Namespace) -> Any:
        from soulmint.dates import encode_date

        packed = encode_date(args.value)
        return {"text": args.value or "000000", "packed": hex(packed), "decimal": str(packed)}

    # Signals handlers
    def _handle_signals_event_data(self, args: argparse.Namespace) -> Any:
        from soulmint.authorizer import event_data_for

        value = event_data_for(args.address, args.deployment)
        return {"address": args.address.lower(), "event_data": str(value), "hex": hex(value)}

    def _handle_signals_build(self, args: argparse.Namespace) -> Any:
        from soulmint.authorizer import MintPolicy, UserData, build_public_signals
        from soulmint.dates import encode_date
        from soulmint.hardening import Validators
        from soulmint.schema import MINT_REQUEST_SCHEMA, validate_document

        request = _load_json(args.request)
        errors = validate_document(request, MINT_REQUEST_SCHEMA)
        if errors:
            raise CLIError("Invalid mint request:\n  " + "\n  ".join(errors))

        policy = MintPolicy.from_config()
        activation = request.get("activation_timestamp") or policy.activation_timestamp
        raw_user = request["user_data"]
        user_data = UserData(
            nullifier=Validators.validate_uint(raw_user["nullifier"], "nullifier").unwrap(),
            identity_creation_timestamp=raw_user.get("identity_creation_timestamp", 0),
            identity_counter=raw_user.get("identity_counter", 0),
        )
        if not activation and not user_data.identity_creation_timestamp:
            raise CLIError(
                "activation_timestamp is required when identity_creation_timestamp is 0"
            )

        signals = build_public_signals(
            policy,
            Validators.validate_uint(request["root"], "root").unwrap(),
            request["recipient"],
            encode_date(request["current_date"]),
            user_data,
            activation,
        )
        return {
            "signals": signals.to_dict(),
            "vector": [str(s) for s in signals.to_vector()],
        }

    # Proof handlers
    def _handle_proof_verify(self, args: argparse.Namespace) -> Any:
        from soulmint.schema import GROTH16_PROOF_SCHEMA, validate_document
        from soulmint.zkp import Groth16Verifier, ProofGateway, ProofPoints, VerificationKey

        proof_doc = _load_json(args.proof)
        errors = validate_document(proof_doc, GROTH16_PROOF_SCHEMA)
        if errors:
            raise CLIError("Invalid proof document:\n  " + "\n  ".join(errors))

        signals = _load_json(args.signals)
        if not isinstance(signals, list):
            raise CLIError("Public signals file must contain a JSON array")

        vk = VerificationKey.load(args.vkey)
        gateway = ProofGateway(Groth16Verifier(vk))
        valid = gateway.verify(ProofPoints.from_snarkjs_json(proof_doc), [int(s) for s in signals])
        return {"valid": valid, "verification_key": vk.digest(), "signal_count": len(signals)}

    # Root handlers
    def _handle_root_keygen(self, args: argparse.Namespace) -> Any:
        from soulmint.attestation import RootAttestor

        attestor = RootAttestor.generate()
        return {"private_key": attestor.private_key_hex, "public_key": attestor.public_key_hex}

    def _handle_root_attest(self, args: argparse.Namespace) -> Any:
        from soulmint.attestation import RootAttestor

        attestor = RootAttestor.from_private_hex(args.private_key)
        signature = attestor.attest(args.root, args.timestamp)
        return {
            "root": f"{args.root:#066x}",
            "timestamp": args.timestamp,
            "public_key": attestor.public_key_hex,
            "attestation": signature.hex(),
        }

    # Config handlers
    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        from soulmint.config import get_config_manager
        return {"path": args.path, "value": get_config_manager().get(args.path)}

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        from soulmint.config import get_config_manager
        return get_config_manager().config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        from soulmint.config import get_config_manager
        errors = get_config_manager().validate()
        return {"valid": len(errors) == 0, "errors": errors}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        from soulmint.config import get_config_manager
        return get_config_manager().export_schema()


def main() -> int:
    """CLI entry point."""
    return SoulmintCLI().run()


if __name__ == "__main__":
    sys.exit(main())
