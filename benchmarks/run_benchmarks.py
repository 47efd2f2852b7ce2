#!/usr/bin/env python3
"""Benchmark suite for PyFlower: latency and empirical vs. theoretical FP rate."""

import argparse
import json
import os
import time
from pathlib import Path
from typing import Dict, List

import numpy as np
import plotly.graph_objects as go
from tqdm import tqdm

import pyflower
from pyflower.sizing import false_positive_rate


class Metrics:
    def __init__(self, bit_width: int, num_entries: int):
        self.bit_width = bit_width
        self.num_entries = num_entries
        self.hash_count = 0
        self.insert_latencies: List[float] = []
        self.query_latencies: List[float] = []
        self.empirical_fp = 0.0
        self.theoretical_fp = 0.0
        self.estimated_fp = 0.0
        self.estimated_count = 0

    def to_dict(self) -> Dict:
        return {
            "bit_width": self.bit_width,
            "hash_count": self.hash_count,
            "entries": self.num_entries,
            "insert_latencies": {
                "p50": np.percentile(self.insert_latencies, 50),
                "p95": np.percentile(self.insert_latencies, 95),
                "p99": np.percentile(self.insert_latencies, 99),
            },
            "query_latencies": {
                "p50": np.percentile(self.query_latencies, 50),
                "p95": np.percentile(self.query_latencies, 95),
                "p99": np.percentile(self.query_latencies, 99),
            },
            "empirical_fp": self.empirical_fp,
            "theoretical_fp": self.theoretical_fp,
            "estimated_fp": self.estimated_fp,
            "estimated_count": self.estimated_count,
        }


class BenchmarkSuite:
    def __init__(self, num_entries: int, num_probes: int, key_size: int):
        self.num_entries = num_entries
        self.num_probes = num_probes
        # distinct prefixes keep probes disjoint from the inserted keys
        self._keys = [b"\x00" + os.urandom(key_size) for _ in range(num_entries)]
        self._probes = [b"\xff" + os.urandom(key_size) for _ in range(num_probes)]

    def run(self, bit_width: int) -> Metrics:
        metrics = Metrics(bit_width, self.num_entries)
        bf = pyflower.new(bit_width, self.num_entries)
        metrics.hash_count = bf.k

        for key in tqdm(self._keys, desc=f"b={bit_width} insert"):
            start = time.perf_counter()
            bf.insert(key)
            metrics.insert_latencies.append((time.perf_counter() - start) * 1000)

        hits = np.zeros(self.num_probes, dtype=bool)
        for i, probe in enumerate(tqdm(self._probes, desc=f"b={bit_width} query")):
            start = time.perf_counter()
            hits[i] = bf.query(probe)
            metrics.query_latencies.append((time.perf_counter() - start) * 1000)

        metrics.empirical_fp = float(hits.mean())
        metrics.theoretical_fp = false_positive_rate(self.num_entries, bf.bit_length, bf.k)
        metrics.estimated_fp = bf.false_positive_probability()
        metrics.estimated_count = bf.estimate_cardinality()
        return metrics


def plot_fp_rates(results: List[Metrics], output_path: Path):
    widths = [m.bit_width for m in results]
    fig = go.Figure()
    fig.add_trace(go.Scatter(x=widths, y=[m.empirical_fp for m in results], name="Empirical"))
    fig.add_trace(go.Scatter(x=widths, y=[m.theoretical_fp for m in results], name="Closed form"))
    fig.add_trace(go.Scatter(x=widths, y=[m.estimated_fp for m in results], name="Fill ratio ** k"))
    fig.update_layout(
        title="False positive rate by bit width",
        xaxis_title="bit width (b)",
        yaxis_title="false positive rate",
        yaxis_type="log",
    )
    fig.write_html(output_path)


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--size", type=int, default=100000, help="Number of inserted entries")
    parser.add_argument("--probes", type=int, default=100000, help="Number of absent keys to query")
    parser.add_argument("--key-size", type=int, default=16, help="Size of keys in bytes")
    parser.add_argument("--widths", type=int, nargs="+", default=[18, 20, 22, 24], help="Bit widths to test")
    parser.add_argument("--output", type=Path, default=Path("benchmark_results"), help="Output directory")
    args = parser.parse_args()

    args.output.mkdir(parents=True, exist_ok=True)

    suite = BenchmarkSuite(args.size, args.probes, args.key_size)
    results = [suite.run(b) for b in args.widths]

    plot_fp_rates(results, args.output / "fp_rates.html")

    with open(args.output / "metrics.json", "w") as f:
        json.dump({f"b{m.bit_width}": m.to_dict() for m in results}, f, indent=2)


if __name__ == "__main__":
    main()
