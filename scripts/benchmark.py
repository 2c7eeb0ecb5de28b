#!/usr/bin/env python3
"""
Ambient Performance Benchmarks

Measures the cost of the capture/release protocol with rich-formatted output.
Each benchmark doubles its workload until a run takes longer than the time
limit, then reports the last run.

Usage:
    python scripts/benchmark.py            # Run all benchmarks
    python scripts/benchmark.py --config   # Show current benchmark configuration
    python scripts/benchmark.py --quiet    # Only print the results table
"""

import argparse
import asyncio
import gc
import time
from typing import Any, Callable, Dict

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ambient import (
    Continuation,
    ContextStack,
    EventEmitter,
    FrameArena,
    bind_event_emitter,
    get_current_object,
    using,
)

# Configuration constants - adjust these to change benchmark behavior
TIME_LIMIT_SECONDS = 0.5  # Stop scaling once a run takes this long
STARTING_N = 16  # Starting workload
SCALE_FACTOR = 2  # Workload multiplier between runs


class _Token:
    def __init__(self):
        self.disposed = False

    def dispose(self):
        self.disposed = True


def _fresh_stack() -> ContextStack:
    return ContextStack(FrameArena(initial_capacity=1024, max_frames=1 << 24))


def _continuations(n: int) -> int:
    """n independent continuations, each holding one object."""
    stack = _fresh_stack()
    for _ in range(n):
        stack.push_scope([_Token()])
        Continuation(stack).run(get_current_object, _Token, stack)
    return n


def _nested_chain(n: int) -> int:
    """A chain n frames deep, released from the innermost frame."""
    stack = _fresh_stack()
    continuations = []
    for _ in range(n):
        stack.push_scope([_Token()])
        continuation = Continuation(stack)
        continuation.enter()
        continuations.append(continuation)
    for continuation in reversed(continuations):
        continuation.complete()
    return n


def _listener_fanout(n: int) -> int:
    """n bound listeners sharing one frame, each emitted once and removed."""
    stack = _fresh_stack()
    emitter = EventEmitter()
    bound = bind_event_emitter(emitter, stack)
    listeners = [lambda: get_current_object(_Token, stack) for _ in range(n)]

    stack.push_scope([_Token()])
    continuation = Continuation(stack)
    continuation.enter()
    for listener in listeners:
        bound.on("tick", listener)
    continuation.complete()

    emitter.emit("tick")
    bound.remove_all_listeners("tick")
    return n


def _using_on_loop(n: int) -> int:
    """n using() blocks scheduled and drained on an event loop."""

    async def main():
        stack = _fresh_stack()
        for _ in range(n):
            using([_Token()], get_current_object, _Token, stack, stack=stack)
        await asyncio.sleep(0)

    asyncio.run(main())
    return n


BENCHMARKS: Dict[str, Callable[[int], int]] = {
    "Continuation lifecycle": _continuations,
    "Nested chain release": _nested_chain,
    "Listener fan-out": _listener_fanout,
    "using() on event loop": _using_on_loop,
}


def run_adaptive_benchmark(operation: Callable[[int], int]) -> Dict[str, Any]:
    """Scale the workload until a run reaches the time limit."""
    n = STARTING_N
    while True:
        gc.collect()
        start = time.perf_counter()
        performed = operation(n)
        elapsed = time.perf_counter() - start

        result = {
            "max_n": n,
            "operation_time": elapsed,
            "operations_per_second": performed / elapsed if elapsed > 0 else 0.0,
        }
        if elapsed >= TIME_LIMIT_SECONDS:
            return result
        n = int(n * SCALE_FACTOR)


class AmbientBenchmark:
    """Rich-formatted display for Ambient benchmarks."""

    def __init__(self, quiet: bool = False):
        self.console = Console()
        self.quiet = quiet
        self.results: Dict[str, Dict[str, Any]] = {}

    def run(self):
        if not self.quiet:
            self.console.print(
                Panel(
                    Align.center("Ambient Context Benchmark Suite"),
                    border_style="blue",
                )
            )

        for name, operation in BENCHMARKS.items():
            if not self.quiet:
                self.console.print(f"[yellow]Running {name}...[/yellow]")
            result = run_adaptive_benchmark(operation)
            self.results[name] = result
            if not self.quiet:
                self.console.print(
                    f"[green]✓[/green] {name}: "
                    f"{result['operations_per_second']:,.0f} ops/sec "
                    f"({result['max_n']:,} items)"
                )

        self._display_results()

    def _display_results(self):
        table = Table(title="Benchmark Results")
        table.add_column("Benchmark", style="cyan", no_wrap=True)
        table.add_column("Max Workload", style="magenta", justify="right")
        table.add_column("Throughput", style="green", justify="right")
        table.add_column("Per Item", style="yellow", justify="right")

        for name, result in self.results.items():
            per_item_us = result["operation_time"] / max(result["max_n"], 1) * 1e6
            table.add_row(
                name,
                f"{result['max_n']:,}",
                f"{result['operations_per_second'] / 1000:.1f}K ops/sec",
                f"{per_item_us:.2f}μs",
            )

        self.console.print()
        self.console.print(table)


def print_config():
    """Print the current benchmark configuration."""
    print("Ambient Benchmark Configuration:")
    print(f"  TIME_LIMIT_SECONDS: {TIME_LIMIT_SECONDS}")
    print(f"  STARTING_N: {STARTING_N}")
    print(f"  SCALE_FACTOR: {SCALE_FACTOR}")


def main():
    parser = argparse.ArgumentParser(description="Ambient Performance Benchmarks")
    parser.add_argument(
        "--config", action="store_true", help="Show current benchmark configuration"
    )
    parser.add_argument(
        "--quiet", action="store_true", help="Show only the final results table"
    )
    args = parser.parse_args()

    if args.config:
        print_config()
        return

    if not args.quiet:
        print_config()
        print()

    AmbientBenchmark(quiet=args.quiet).run()


if __name__ == "__main__":
    main()
