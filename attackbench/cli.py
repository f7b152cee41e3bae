"""
AttackBench CLI

Runs the workbench in-process from a terminal: inspect and install tools,
run a vector with live output, and manage the sealed evidence.

Usage:
    attackbench tools --refresh
    attackbench install nmap
    attackbench run "Port Service Detection" 10.0.0.5 22
    attackbench evidence list
    attackbench serve --port 8765
"""

import argparse
import asyncio
import json
import signal
import sys
from typing import Optional

from attackbench.base.config import WorkbenchConfig, get_config, setup_logging
from attackbench.data.models import AttackCategory
from attackbench.errors import PrerequisitesNotMet, WorkbenchError
from attackbench.server.state import ApplicationState, build_state
from attackbench.toolkit.monitor import ToolStatus
from attackbench.toolkit.vectors import get_vector, list_vectors

STATUS_ICONS = {
    ToolStatus.AVAILABLE: "✅",
    ToolStatus.NEEDS_INSTALLATION: "⬇️ ",
    ToolStatus.INSTALLING: "⏳",
    ToolStatus.FAILED: "❌",
    ToolStatus.UNAVAILABLE: "⛔",
}


def cmd_serve(args, config: WorkbenchConfig) -> int:
    from attackbench.server.api import serve

    serve(host=args.host, port=args.port, config=config)
    return 0


def cmd_tools(args, config: WorkbenchConfig) -> int:
    state = build_state(config, auto_seal=False)
    statuses = state.monitor.refresh() if args.refresh else {
        name: state.monitor.status_of(name) for name in state.registry.names()
    }
    for name, status in sorted(statuses.items()):
        print(f"{STATUS_ICONS[status]} {name:<14} {status.value:<20} {state.registry.label(name)}")
    return 0


async def _install(state: ApplicationState, tool: str) -> int:
    state.monitor.install_output.connect(lambda name, line: print(f"   {line}"))
    print(f"🔧 Installing {tool}...")
    result = await state.monitor.install(tool)
    if result.status is ToolStatus.AVAILABLE:
        print(f"✅ {tool} is available: {result.message}")
        return 0
    print(f"❌ Install of {tool} failed: {result.message}")
    return 1


def cmd_install(args, config: WorkbenchConfig) -> int:
    return asyncio.run(_install(build_state(config, auto_seal=False), args.tool))


def cmd_vectors(args, config: WorkbenchConfig) -> int:
    category = AttackCategory(args.category) if args.category else None
    for vector in list_vectors(category):
        tools = ", ".join(vector.required_tools)
        print(f"[{vector.severity.value.upper():<8}] {vector.name:<34} {vector.category.value:<20} ({tools})")
    return 0


async def _run(state: ApplicationState, vector_name: str, target: str, port: int, timeout: Optional[float]) -> int:
    vector = get_vector(vector_name)
    await state.evidence.load()
    try:
        return await _run_and_seal(state, vector, target, port, timeout)
    finally:
        await state.evidence.index.close()


async def _run_and_seal(state: ApplicationState, vector, target: str, port: int, timeout: Optional[float]) -> int:
    state.manager.output_received.connect(lambda session_id, line: print(line, flush=True))

    loop = asyncio.get_running_loop()
    # First Ctrl-C stops the session cleanly; the result and evidence are still produced
    loop.add_signal_handler(signal.SIGINT, state.manager.stop_all)
    try:
        result = await state.manager.execute(vector, target, port, timeout=timeout)
    finally:
        loop.remove_signal_handler(signal.SIGINT)

    print("")
    print(f"🏁 Session {result.session_id} {result.status.value} in {result.duration:.1f}s ({result.outcome})")
    for cred in result.credentials:
        print(f"🔑 {cred.service}:{cred.port} {cred.username}:{cred.password}")
    for vuln in result.vulnerabilities:
        print(f"⚠️  [{vuln.severity.upper()}] {vuln.type}: {vuln.description}")
    for path in result.files:
        print(f"📁 {path}")

    package = await state.evidence.seal(state.manager.get_session(result.session_id), result)
    print(f"📦 Evidence sealed: {package.directory}")
    return 0 if result.success else 1


def cmd_run(args, config: WorkbenchConfig) -> int:
    state = build_state(config, auto_seal=False)
    try:
        return asyncio.run(_run(state, args.vector, args.target, args.port, args.timeout))
    except PrerequisitesNotMet as e:
        print(f"❌ {e.message}")
        for missing in e.details.get("missing", []):
            print(f"   - {missing['tool']} ({missing['status']}): {missing['hint']}")
        return 2


async def _evidence(state: ApplicationState, args) -> int:
    await state.evidence.load()
    try:
        if args.action == "list":
            for package in state.evidence.list():
                s = package.summary
                print(
                    f"{package.id}  {package.timestamp:%Y-%m-%d %H:%M}  {package.attack_name:<30} "
                    f"{package.target}:{package.port}  vulns={s.total_vulnerabilities} "
                    f"creds={s.credentials_found} files={s.directories_found}"
                )
            print(json.dumps(state.evidence.statistics(), indent=2))
            return 0

        package = state.evidence.get(args.package_id)
        if args.action == "export":
            location = state.evidence.export(package, args.destination, archive=args.zip)
            print(f"📤 Exported to {location}")
        elif args.action == "verify":
            report = state.evidence.verify(package)
            for filename, ok in report.items():
                print(f"{'✅' if ok else '❌'} {filename}")
            return 0 if all(report.values()) else 1
        elif args.action == "delete":
            if not args.yes:
                answer = input(f"Delete {package.name}? This cannot be undone [y/N] ")
                if answer.strip().lower() != "y":
                    print("Aborted.")
                    return 1
            await state.evidence.delete(package)
            print(f"🗑️  Deleted {package.name}")
        return 0
    finally:
        await state.evidence.index.close()


def cmd_evidence(args, config: WorkbenchConfig) -> int:
    return asyncio.run(_evidence(build_state(config, auto_seal=False), args))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="attackbench", description="AttackBench security testing workbench")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP/WebSocket API")
    serve_parser.add_argument("--host")
    serve_parser.add_argument("--port", type=int)
    serve_parser.set_defaults(func=cmd_serve)

    tools_parser = subparsers.add_parser("tools", help="Show tool availability")
    tools_parser.add_argument("--refresh", action="store_true", help="Re-probe every tool")
    tools_parser.set_defaults(func=cmd_tools)

    install_parser = subparsers.add_parser("install", help="Install a registry tool")
    install_parser.add_argument("tool")
    install_parser.set_defaults(func=cmd_install)

    vectors_parser = subparsers.add_parser("vectors", help="List attack vectors")
    vectors_parser.add_argument("--category", choices=[c.value for c in AttackCategory])
    vectors_parser.set_defaults(func=cmd_vectors)

    run_parser = subparsers.add_parser("run", help="Run one attack vector and seal its evidence")
    run_parser.add_argument("vector", help="Vector name, e.g. 'SSH Brute Force'")
    run_parser.add_argument("target", help="Target host or IP")
    run_parser.add_argument("port", type=int)
    run_parser.add_argument("--timeout", type=float, help="Session time limit in seconds")
    run_parser.set_defaults(func=cmd_run)

    evidence_parser = subparsers.add_parser("evidence", help="Manage evidence packages")
    evidence_sub = evidence_parser.add_subparsers(dest="action", required=True)
    evidence_sub.add_parser("list")
    export_parser = evidence_sub.add_parser("export")
    export_parser.add_argument("package_id")
    export_parser.add_argument("--destination")
    export_parser.add_argument("--zip", action="store_true")
    verify_parser = evidence_sub.add_parser("verify")
    verify_parser.add_argument("package_id")
    delete_parser = evidence_sub.add_parser("delete")
    delete_parser.add_argument("package_id")
    delete_parser.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    evidence_parser.set_defaults(func=cmd_evidence)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 0

    try:
        config = get_config()
        if args.debug:
            config.debug = True
        setup_logging(config)
        return args.func(args, config)
    except WorkbenchError as e:
        print(f"❌ [{e.code.value}] {e.message}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
