#!/usr/bin/env python3
"""Solve Kuhn poker with a chosen CFR variant."""

import argparse
import logging
import sys
from pathlib import Path

import numpy as np
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from cfrkit.game import count_info_sets, count_nodes, count_terminal_nodes, new_game
from cfrkit.solver import DiscountParams, PolicyTable, exploitability, load_table_file, save_table
from cfrkit.solver.cfr import ALGORITHMS, CFRSolver, SolverConfig

DISCOUNTS = {
    "none": DiscountParams,
    "cfr+": DiscountParams.cfr_plus,
    "linear": DiscountParams.linear,
    "discounted": DiscountParams.discounted,
}

KUHN_GAME_VALUE = -1.0 / 18


def main():
    parser = argparse.ArgumentParser(
        description="Solve Kuhn poker using counterfactual regret minimization"
    )
    parser.add_argument(
        "-a", "--algorithm",
        choices=ALGORITHMS,
        default="external",
        help="CFR variant (default: external)",
    )
    parser.add_argument(
        "-i", "--iterations",
        type=int,
        default=10000,
        help="Number of CFR iterations (default: 10000)",
    )
    parser.add_argument(
        "--discount",
        choices=sorted(DISCOUNTS),
        default="none",
        help="Regret discounting scheme (default: none)",
    )
    parser.add_argument(
        "-e", "--epsilon",
        type=float,
        default=0.6,
        help="Exploration for outcome sampling (default: 0.6)",
    )
    parser.add_argument(
        "--runs",
        type=int,
        default=1,
        help="Traversals per iteration (default: 1)",
    )
    parser.add_argument(
        "-k", "--robust-k",
        type=int,
        default=1,
        help="Actions explored per node by robust sampling (default: 1)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Random seed",
    )
    parser.add_argument(
        "-r", "--resume",
        help="Continue from a saved policy table",
    )
    parser.add_argument(
        "-o", "--output",
        help="Save policy table to file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output",
    )

    args = parser.parse_args()
    console = Console()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    rng = np.random.default_rng(args.seed)

    def root_factory():
        return new_game(rng)

    console.print(
        f"Game tree: {count_nodes(root_factory())} nodes "
        f"({count_terminal_nodes(root_factory())} terminal, "
        f"{count_info_sets(root_factory())} infosets)"
    )

    params = DISCOUNTS[args.discount]()
    profile = None
    if args.resume:
        resume_path = Path(args.resume)
        if not resume_path.exists():
            console.print(f"[red]Policy table not found: {resume_path}[/]")
            return 1
        profile = load_table_file(resume_path, params)

    config = SolverConfig(
        algorithm=args.algorithm,
        num_iterations=args.iterations,
        discount=params,
        runs_per_iteration=args.runs,
        epsilon=args.epsilon,
        robust_k=args.robust_k,
        seed=args.seed,
        report_interval=max(1, args.iterations // 100),
    )
    solver = CFRSolver(root_factory, config, profile)

    # Run solver with progress
    console.print()
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task(f"Running {args.algorithm} CFR ({args.iterations} iterations)...")

        def callback(iteration, mean_value):
            progress.update(task, description=f"Iteration {iteration}, game value={mean_value:.4f}")

        profile = solver.solve(callback=callback)

    console.print("[green]Done![/]")
    console.print(f"[bold]Mean game value:[/] {solver.mean_value:.4f} (exact {KUHN_GAME_VALUE:.4f})")
    console.print(f"[bold]Exploitability:[/] {exploitability(root_factory, profile):.5f}")

    # Display strategy
    console.print()
    _display_strategy(console, profile)

    # Save if requested
    if args.output:
        save_table(profile, args.output)
        console.print(f"\n[bold]Policy table saved to:[/] {args.output}")

    return 0


def _display_strategy(console: Console, profile: PolicyTable) -> None:
    """Display the average strategy of every infoset."""
    table = Table(title="Average Strategy", show_header=True, header_style="bold")
    table.add_column("Player", justify="right")
    table.add_column("Infoset", style="cyan")
    table.add_column("Check/Fold", justify="right")
    table.add_column("Bet/Call", justify="right")

    for player, key, strategy in profile.strategy_summary():
        cells = [f"{p:.0%}" for p in strategy]
        table.add_row(str(player), key.decode(errors="replace"), *cells)

    console.print(table)
    console.print(f"\n[dim]Total information sets: {profile.num_info_sets()}[/]")


if __name__ == "__main__":
    sys.exit(main())
