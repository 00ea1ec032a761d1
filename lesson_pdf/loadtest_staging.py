#!/usr/bin/env python3
"""Staging load test runner for POST /pdf.

Exercises the shared Chromium instance under concurrent page creation.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import math
import time
from dataclasses import dataclass
from typing import Any

import httpx


def sample_payload(rows_per_card: int = 40, cards: int = 3) -> dict[str, Any]:
    payload_cards = []
    for card_idx in range(cards):
        body = "".join(
            f"<tr><td>{i + 1}</td><td>Word {card_idx}-{i}</td><td>शब्द {card_idx}-{i}</td></tr>"
            for i in range(rows_per_card)
        )
        payload_cards.append(
            {
                "title": f"Card {card_idx + 1}",
                "description": (
                    "<table><thead><tr><th>S.No.</th><th>English</th><th>Hindi</th></tr></thead>"
                    f"<tbody>{body}</tbody></table>"
                ),
            }
        )
    return {"title": "Load Test Lesson", "cards": payload_cards}


@dataclass
class RoundResult:
    layout: str
    concurrency: int
    total_requests: int
    ok_count: int
    error_count: int
    throughput_rps: float
    avg_ms: float
    p50_ms: float
    p95_ms: float
    p99_ms: float
    total_s: float


def percentile(values: list[float], p: float) -> float:
    if not values:
        return math.nan
    arr = sorted(values)
    k = (len(arr) - 1) * p
    f = math.floor(k)
    c = math.ceil(k)
    if f == c:
        return arr[int(k)]
    d0 = arr[f] * (c - k)
    d1 = arr[c] * (k - f)
    return d0 + d1


async def run_round(
    *,
    base_url: str,
    layout: str,
    payload: dict[str, Any],
    concurrency: int,
    total_requests: int,
    timeout_s: float,
) -> RoundResult:
    url = f"{base_url.rstrip('/')}/pdf"
    queue: asyncio.Queue[int] = asyncio.Queue()
    latencies_ms: list[float] = []
    ok_count = 0
    error_count = 0
    lock = asyncio.Lock()

    for i in range(total_requests):
        queue.put_nowait(i)

    timeout = httpx.Timeout(timeout_s)
    limits = httpx.Limits(max_connections=concurrency, max_keepalive_connections=concurrency)

    async def worker(client: httpx.AsyncClient) -> None:
        nonlocal ok_count, error_count
        while True:
            try:
                queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            started = time.perf_counter()
            try:
                resp = await client.post(url, params={"layout": layout}, json=payload)
                elapsed_ms = (time.perf_counter() - started) * 1000.0
                ok = resp.status_code == 200 and resp.content.startswith(b"%PDF")
                async with lock:
                    latencies_ms.append(elapsed_ms)
                    if ok:
                        ok_count += 1
                    else:
                        error_count += 1
            except httpx.HTTPError:
                elapsed_ms = (time.perf_counter() - started) * 1000.0
                async with lock:
                    latencies_ms.append(elapsed_ms)
                    error_count += 1
            finally:
                queue.task_done()

    start = time.perf_counter()
    async with httpx.AsyncClient(timeout=timeout, limits=limits) as client:
        workers = [asyncio.create_task(worker(client)) for _ in range(concurrency)]
        await queue.join()
        await asyncio.gather(*workers)
    total_s = time.perf_counter() - start

    avg_ms = sum(latencies_ms) / len(latencies_ms) if latencies_ms else math.nan
    return RoundResult(
        layout=layout,
        concurrency=concurrency,
        total_requests=total_requests,
        ok_count=ok_count,
        error_count=error_count,
        throughput_rps=(total_requests / total_s) if total_s > 0 else 0.0,
        avg_ms=avg_ms,
        p50_ms=percentile(latencies_ms, 0.50),
        p95_ms=percentile(latencies_ms, 0.95),
        p99_ms=percentile(latencies_ms, 0.99),
        total_s=total_s,
    )


def print_table(results: list[RoundResult]) -> None:
    print("layout,concurrency,total,ok,error,total_s,rps,avg_ms,p50_ms,p95_ms,p99_ms")
    for row in results:
        print(
            f"{row.layout},{row.concurrency},{row.total_requests},{row.ok_count},{row.error_count},"
            f"{row.total_s:.3f},{row.throughput_rps:.2f},{row.avg_ms:.2f},{row.p50_ms:.2f},"
            f"{row.p95_ms:.2f},{row.p99_ms:.2f}"
        )


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Staging load test for the lesson PDF endpoint.")
    parser.add_argument("--base-url", required=True, help="Target base URL, e.g. https://staging.example.com")
    parser.add_argument("--layouts", default="two,single", help="Comma-separated layouts: single,two")
    parser.add_argument("--concurrency", default="2,4,8", help="Comma-separated concurrency levels.")
    parser.add_argument("--requests-per-round", type=int, default=30, help="Total requests per layout/concurrency round.")
    parser.add_argument("--rows-per-card", type=int, default=40)
    parser.add_argument("--cards", type=int, default=3)
    parser.add_argument("--timeout-s", type=float, default=90.0, help="Per-request timeout seconds.")
    parser.add_argument("--output-json", default="", help="Optional file path to write JSON summary.")
    return parser.parse_args()


async def main() -> None:
    args = parse_args()
    layouts = [x.strip() for x in args.layouts.split(",") if x.strip() in {"single", "two"}]
    levels = [int(x.strip()) for x in args.concurrency.split(",") if x.strip()]
    if not layouts:
        raise SystemExit("No valid layouts selected. Use single and/or two.")

    payload = sample_payload(rows_per_card=args.rows_per_card, cards=args.cards)
    print(f"base_url={args.base_url.rstrip('/')}")
    print(f"layouts={','.join(layouts)}")
    print(f"concurrency_levels={levels}")
    print(f"requests_per_round={args.requests_per_round}")

    results: list[RoundResult] = []
    for layout in layouts:
        for level in levels:
            print(f"running layout={layout} concurrency={level}...")
            out = await run_round(
                base_url=args.base_url,
                layout=layout,
                payload=payload,
                concurrency=level,
                total_requests=args.requests_per_round,
                timeout_s=args.timeout_s,
            )
            results.append(out)

    print_table(results)

    if args.output_json:
        summary = [r.__dict__ for r in results]
        with open(args.output_json, "w", encoding="utf-8") as f:
            json.dump(summary, f, ensure_ascii=False, indent=2)
        print(f"saved_json={args.output_json}")


if __name__ == "__main__":
    asyncio.run(main())
