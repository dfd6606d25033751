#!/usr/bin/env python3
"""
Monitoring CLI - control and inspect a running monitoring service.

Usage:
    python monitor_cli.py [command] [args]

Commands:
    status              - Show scheduler status and next runs (default)
    initialize          - Schedule every active job
    stop                - Cancel all scheduled jobs
    cleanup             - Run the duplicate collapse now
    monitor <name>      - Run one monitor pipeline now (news, facebook, official-pages)
    logs [limit] [type] - Show recent monitoring log entries
    stats               - Show dashboard counters
    watch               - Continuously show status (refresh every 30s)

The service address comes from API_BASE_URL (default http://localhost:8000).
"""

import asyncio
import os
import sys
from datetime import datetime
from typing import Any, Dict

from dotenv import load_dotenv

# Add project root to PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from monitor.infra.http import HttpClient


class Colors:
    """ANSI color codes for terminal output."""
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    BLUE = "\033[94m"
    CYAN = "\033[96m"
    WHITE = "\033[97m"
    BOLD = "\033[1m"
    END = "\033[0m"


STATUS_COLORS = {
    "SUCCESS": Colors.GREEN,
    "INFO": Colors.CYAN,
    "WARNING": Colors.YELLOW,
    "ERROR": Colors.RED,
}


def base_url() -> str:
    return os.getenv("API_BASE_URL", "http://localhost:8000").rstrip("/")


def format_timestamp(value: str) -> str:
    """Format an ISO timestamp for display."""
    if not value:
        return "N/A"
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return dt.strftime("%Y-%m-%d %H:%M:%S %Z")


async def _get(path: str, **params: Any) -> Any:
    async with HttpClient(timeout=30.0, max_retries=2) as http:
        return await http.get_json(f"{base_url()}{path}", params=params or None)


async def _post(path: str, data: Dict[str, Any] = None, timeout: float = 300.0) -> Any:
    async with HttpClient(timeout=timeout, max_retries=1) as http:
        return await http.post_json(f"{base_url()}{path}", data)


async def show_status():
    """Show scheduler status."""
    status = await _get("/api/scheduler")

    print(f"{Colors.BOLD}📊 Scheduler Status{Colors.END}")
    print("=" * 50)
    running = status.get("isInitialized")
    color = Colors.GREEN if running else Colors.RED
    print(f"Status: {color}{'🟢 Running' if running else '🔴 Not initialized'}{Colors.END}")
    print(f"Active Jobs: {Colors.WHITE}{len(status.get('activeJobs', []))}{Colors.END}")
    print()

    next_runs = status.get("nextRuns") or {}
    for name in status.get("activeJobs", []):
        print(f"{Colors.GREEN}●{Colors.END} {Colors.BOLD}{name}{Colors.END}")
        print(f"   Next Run: {Colors.WHITE}{format_timestamp(next_runs.get(name))}{Colors.END}")


async def initialize():
    result = await _post("/api/scheduler", {"action": "initialize"})
    print(f"{Colors.GREEN}✅ {result['message']}{Colors.END}")
    for name in result.get("activeJobs", []):
        print(f"  - {name}")


async def stop():
    result = await _post("/api/scheduler", {"action": "stop"})
    print(f"{Colors.YELLOW}⏹  {result['message']}{Colors.END}")


async def cleanup():
    result = await _post("/api/admin/cleanup-duplicates")
    print(f"{Colors.GREEN}🧹 {result['message']}{Colors.END}")
    print(f"  Exact duplicates: {Colors.WHITE}{result['exactDuplicates']}{Colors.END}")
    print(f"  Fuzzy duplicates: {Colors.WHITE}{result['fuzzyDuplicates']}{Colors.END}")


async def run_monitor(name: str):
    print(f"{Colors.BLUE}Running {name} monitor...{Colors.END}")
    result = await _post(f"/api/monitor/{name}")
    print(f"{Colors.GREEN}✅ {name}: fetched {result.get('fetched', 0)}, "
          f"created {result.get('created', 0)}, skipped {result.get('skipped', 0)}{Colors.END}")


async def show_logs(limit: int = 20, source_type: str = None):
    params = {"limit": limit}
    if source_type:
        params["sourceType"] = source_type
    entries = await _get("/api/admin/logs", **params)

    print(f"{Colors.BOLD}📜 Monitoring Log (latest {len(entries)}){Colors.END}")
    print("=" * 80)
    for entry in entries:
        color = STATUS_COLORS.get(entry["status"], Colors.WHITE)
        print(f"{Colors.WHITE}{format_timestamp(entry['createdAt'])}{Colors.END} "
              f"{color}{entry['status']:<7}{Colors.END} "
              f"{Colors.CYAN}{entry['action']}{Colors.END} {entry['message']}")


async def show_stats():
    stats = await _get("/api/stats")
    print(f"{Colors.BOLD}📈 Dashboard Counters{Colors.END}")
    print("=" * 40)
    print(f"Total Articles:   {Colors.WHITE}{stats['totalArticles']}{Colors.END}")
    print(f"Today:            {Colors.WHITE}{stats['todayArticles']}{Colors.END}")
    print(f"Active Sources:   {Colors.WHITE}{stats['activeSources']}{Colors.END}")
    print(f"Pending Analysis: {Colors.YELLOW}{stats['pendingAnalysis']}{Colors.END}")


async def watch_status():
    """Continuously show scheduler status."""
    try:
        while True:
            os.system('clear' if os.name == 'posix' else 'cls')
            print(f"Updated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
            await show_status()
            print()
            print(f"{Colors.BLUE}Refreshing in 30 seconds... (Ctrl+C to exit){Colors.END}")
            await asyncio.sleep(30)
    except KeyboardInterrupt:
        print(f"\n{Colors.YELLOW}Monitoring stopped{Colors.END}")


async def main():
    """Main entry point."""
    load_dotenv()
    command = sys.argv[1].lower() if len(sys.argv) > 1 else "status"
    args = sys.argv[2:]

    commands = {
        "status": show_status,
        "initialize": initialize,
        "stop": stop,
        "cleanup": cleanup,
        "monitor": lambda: run_monitor(args[0]) if args else None,
        "logs": lambda: show_logs(int(args[0]) if args else 20, args[1] if len(args) > 1 else None),
        "stats": show_stats,
        "watch": watch_status,
    }

    if command not in commands or (command == "monitor" and not args):
        print(f"Unknown command: {' '.join(sys.argv[1:])}")
        print(f"Available commands: {', '.join(commands.keys())}")
        print()
        print(__doc__)
        sys.exit(1)

    try:
        await commands[command]()
    except KeyboardInterrupt:
        print(f"\n{Colors.YELLOW}Interrupted{Colors.END}")
    except Exception as e:
        print(f"{Colors.RED}Error: {e}{Colors.END}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
