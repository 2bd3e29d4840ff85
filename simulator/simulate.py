"""Log traffic simulator for the Security Log Monitor.

Posts realistic log entries (logins, brute force, port scans, injection
attempts, exfiltration, firewall denials) to a running backend through its
REST API so the detection pipeline and the live feed can be exercised.

Usage:
    python simulator/simulate.py                     # run all scenarios
    python simulator/simulate.py --scenario brute_force
    python simulator/simulate.py --api http://localhost:8000
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import random

import httpx

logging.basicConfig(level=logging.INFO, format="%(asctime)s [SIM] %(message)s")
logger = logging.getLogger("simulator")

HOSTILE_IPS = ["203.0.113.42", "198.51.100.28", "192.0.2.156", "198.51.100.99"]
INTERNAL_IPS = ["192.168.1.105", "10.0.0.15", "10.0.0.45"]


async def _post(client: httpx.AsyncClient, **log) -> None:
    resp = await client.post("/api/logs", json=log)
    resp.raise_for_status()
    logger.info("[%s] %s", log["level"], log["message"])


# ── Scenario generators ──────────────────────────────


async def normal_traffic(client: httpx.AsyncClient, count: int = 5, delay: float = 0.3) -> None:
    """Benign events that should not raise alerts."""
    for _ in range(count):
        await _post(
            client,
            level="info",
            source="application",
            ip_address=random.choice(INTERNAL_IPS),
            event_type="user_login",
            message="User authentication successful",
        )
        await asyncio.sleep(delay)


async def brute_force(client: httpx.AsyncClient, attempts: int = 8, delay: float = 0.2) -> None:
    """Repeated failed logins from one address."""
    ip = random.choice(HOSTILE_IPS)
    users = ["root", "admin", "deploy", "postgres"]
    for i in range(attempts):
        await _post(
            client,
            level="warning",
            source="security",
            ip_address=ip,
            event_type="failed_login",
            message=f"Failed login attempt for user {random.choice(users)} from {ip}",
            metadata=f'{{"attempts": {i + 1}}}',
        )
        await asyncio.sleep(delay)


async def port_scan(client: httpx.AsyncClient, count: int = 5, delay: float = 0.3) -> None:
    ip = random.choice(HOSTILE_IPS)
    for port in random.sample([22, 23, 80, 443, 3306, 3389, 8080], count):
        await _post(
            client,
            level="warning",
            source="network",
            ip_address=ip,
            event_type="connection_attempt",
            message=f"Port scan detected: SYN to port {port} from {ip}",
        )
        await asyncio.sleep(delay)


async def unauthorized_access(client: httpx.AsyncClient, delay: float = 0.5) -> None:
    for resource in ("/admin", "/wp-admin", "/phpmyadmin"):
        await _post(
            client,
            level="critical",
            source="security",
            ip_address="192.0.2.156",
            event_type="unauthorized_access",
            message=f"Unauthorized access attempt to {resource}",
        )
        await asyncio.sleep(delay)


async def injection(client: httpx.AsyncClient, delay: float = 0.5) -> None:
    payloads = ["' OR 1=1 --", "<script>alert(1)</script>", "UNION SELECT password FROM users"]
    for payload in payloads:
        await _post(
            client,
            level="error",
            source="application",
            ip_address=random.choice(HOSTILE_IPS),
            event_type="request_rejected",
            message=f"SQL injection pattern in query string: {payload}",
        )
        await asyncio.sleep(delay)


async def exfiltration(client: httpx.AsyncClient, delay: float = 0.5) -> None:
    await _post(
        client,
        level="error",
        source="network",
        ip_address="10.0.0.45",
        event_type="high_bandwidth",
        message="Data transfer unusual: 950MB sent to 198.51.100.99",
    )
    await asyncio.sleep(delay)


async def firewall(client: httpx.AsyncClient, count: int = 4, delay: float = 0.3) -> None:
    for _ in range(count):
        await _post(
            client,
            level="info",
            source="network",
            ip_address=random.choice(HOSTILE_IPS),
            event_type="firewall",
            message="Inbound connection denied by firewall policy",
        )
        await asyncio.sleep(delay)


SCENARIOS = {
    "normal_traffic": normal_traffic,
    "brute_force": brute_force,
    "port_scan": port_scan,
    "unauthorized_access": unauthorized_access,
    "injection": injection,
    "exfiltration": exfiltration,
    "firewall": firewall,
}


# ── Main runner ──────────────────────────────────────


async def run_all(client: httpx.AsyncClient) -> None:
    """Run all scenarios sequentially with pauses between them."""
    for name, fn in SCENARIOS.items():
        logger.info("=== Starting scenario: %s ===", name)
        await fn(client)
        await asyncio.sleep(1)
    logger.info("=== All scenarios complete ===")


async def main() -> None:
    parser = argparse.ArgumentParser(description="Security log simulator")
    parser.add_argument("--scenario", choices=list(SCENARIOS.keys()), help="Run a single scenario")
    parser.add_argument("--api", default="http://localhost:8000", help="Backend base URL")
    args = parser.parse_args()

    async with httpx.AsyncClient(base_url=args.api, timeout=10.0) as client:
        if args.scenario:
            logger.info("Running scenario: %s", args.scenario)
            await SCENARIOS[args.scenario](client)
        else:
            await run_all(client)


if __name__ == "__main__":
    asyncio.run(main())
