"""
Chaos Simulation Script

Fires concurrent orders at a running API, then races operators against
each other on the same orders to exercise the status compare-and-swap.
Run from project root: python scripts/simulate.py

Requires a seeded catalog: pass product ids with --products.
"""

import asyncio
import sys
import random
import time
import argparse
from datetime import datetime
from typing import Any

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:3000"
TOTAL_ORDERS = 50

FIRST_NAMES = ["Aziz", "Dilnoza", "Jasur", "Madina", "Otabek", "Nilufar", "Sardor", "Zarina"]
STREETS = ["Amir Temur", "Navoi", "Bunyodkor", "Mustaqillik", "Shota Rustaveli", "Chilonzor"]


def generate_random_order(product_ids: list[str]) -> dict[str, Any]:
    """Generate a random order request."""
    order_type = random.choice(["DELIVERY", "DELIVERY", "PICKUP"])
    items = [
        {"product_id": random.choice(product_ids), "quantity": random.randint(1, 3)}
        for _ in range(random.randint(1, 4))
    ]
    return {
        "order_type": order_type,
        "items": items,
        "customer_name": random.choice(FIRST_NAMES),
        "customer_phone": f"+99890{random.randint(1000000, 9999999)}",
        "address": f"{random.choice(STREETS)} {random.randint(1, 120)}" if order_type == "DELIVERY" else None,
        "payment_type": random.choice(["CASH", "CARD"]),
        "comment": random.choice([None, "Call on arrival", "No onions", "Leave at door"]),
    }


async def send_order(
    client: httpx.AsyncClient,
    order_num: int,
    product_ids: list[str],
) -> dict[str, Any]:
    """Create one order."""
    start_time = time.time()

    try:
        response = await client.post(
            f"{API_BASE_URL}/api/orders",
            json=generate_random_order(product_ids),
            timeout=30.0
        )
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 201:
            data = response.json()
            return {
                "order_num": order_num,
                "success": True,
                "order_id": data["id"],
                "total": data["total_amount"],
                "time": elapsed,
            }
        return {
            "order_num": order_num,
            "success": False,
            "error": f"{response.status_code} {response.text[:100]}",
            "time": elapsed,
        }
    except httpx.HTTPError as e:
        return {
            "order_num": order_num,
            "success": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }


async def race_operators(client: httpx.AsyncClient, order_id: int) -> tuple[int, int]:
    """
    Two operators act on the same NEW order at once.

    Returns:
        (number of 200 responses, number of 409 responses)
    """
    async def act(status: str) -> int:
        response = await client.patch(
            f"{API_BASE_URL}/api/orders/{order_id}/status",
            json={"status": status, "expected_status": "NEW"},
            timeout=30.0
        )
        return response.status_code

    codes = await asyncio.gather(act("COOKING"), act("CANCELLED"))
    return codes.count(200), codes.count(409)


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(
    product_ids: list[str],
    num_orders: int = TOTAL_ORDERS,
) -> dict[str, Any]:
    """
    Run the chaos simulation.

    Args:
        product_ids: Catalog ids to build baskets from
        num_orders: Number of orders to simulate
    """
    print("=" * 70)
    print("🔥 CHAOS SIMULATION - HIGH CONCURRENCY TEST")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient() as client:
        print("\n🚀 Firing orders...\n")
        results = await asyncio.gather(
            *[send_order(client, i + 1, product_ids) for i in range(num_orders)]
        )

        successful = [r for r in results if r["success"]]
        print("⚔️  Racing operators on every created order...\n")
        races = await asyncio.gather(
            *[race_operators(client, r["order_id"]) for r in successful]
        )

    total_time = round(time.time() - start_time, 2)
    failed = [r for r in results if not r["success"]]
    double_wins = [r for r, (wins, _) in zip(successful, races) if wins > 1]
    no_wins = [r for r, (wins, _) in zip(successful, races) if wins == 0]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)

    print(f"\n✅ Successful Orders: {len(successful)}/{num_orders}")
    print(f"❌ Failed Orders: {len(failed)}/{num_orders}")
    print(f"⏱️  Total Time: {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print(f"\n📈 Performance Metrics:")
        print(f"   Average Response: {avg_time}s")
        print(f"   Fastest: {min(r['time'] for r in successful)}s")
        print(f"   Slowest: {max(r['time'] for r in successful)}s")
        print(f"   💰 Total Revenue: {sum(r['total'] for r in successful):,.0f}")

    print(f"\n⚔️  Operator races: {len(races)}")
    print(f"   Exactly one winner: {len(races) - len(double_wins) - len(no_wins)}")
    if double_wins:
        print(f"   ❌ Both operators won on orders {[r['order_id'] for r in double_wins]}")
    if no_wins:
        print(f"   ⚠️ Nobody won on orders {[r['order_id'] for r in no_wins]}")

    if failed:
        print(f"\n⚠️  Failed Order Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

    print("\n" + "=" * 70)

    return {
        "total": num_orders,
        "successful": len(successful),
        "failed": len(failed),
        "double_wins": len(double_wins),
        "total_time": total_time,
        "results": results,
    }


async def preflight() -> bool:
    """Check the API is reachable and open before the chaos run."""
    async with httpx.AsyncClient() as client:
        print("\n1️⃣ Health Check...")
        response = await client.get(f"{API_BASE_URL}/health")
        if response.status_code != 200:
            print(f"   ❌ Failed: {response.text}")
            return False
        data = response.json()
        print(f"   ✅ Status: {data.get('status')}")
        print(f"   Database: {data.get('database')}")
        print(f"   Redis: {data.get('redis')}")

        print("\n2️⃣ Store Status...")
        store = (await client.get(f"{API_BASE_URL}/api/store/status")).json()
        print(f"   {'✅' if store['is_open'] else '❌'} {store['message']} (mode {store['mode']})")
        return store["is_open"]


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Chaos Simulation Script")
    parser.add_argument("--products", nargs="+", required=True, help="Catalog product ids")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    parser.add_argument("--skip-checks", action="store_true", help="Skip pre-flight checks")
    args = parser.parse_args()

    API_BASE_URL = args.url.rstrip("/")

    if not args.skip_checks and not asyncio.run(preflight()):
        print("\n❌ Pre-flight checks failed. Fix issues before running simulation.")
        sys.exit(1)

    summary = asyncio.run(run_simulation(args.products, args.orders))
    sys.exit(1 if summary["double_wins"] else 0)
