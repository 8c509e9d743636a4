#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
visualize_session.py

Visualisatie van een FicTrac subject sessielog (JSONL).

Gebruik:
    python3 visualize_session.py <log_file> [--output-dir <dir>] [--show]

Voorbeeld:
    python3 visualize_session.py logs/fictrac_20240101_120000_log.jsonl --show
    python3 visualize_session.py logs/fictrac_20240101_120000_log.jsonl --output-dir ./plots

Gegenereerde plots:
    1. overview_dashboard.png   - trajectory, heading, snelheid, record kinds
    2. heading_blocks.png       - heading met primary/secondary blokken en spin gate
    3. translation.png          - attempted vs actual translatie per frame
"""

import sys
import argparse
import json
from pathlib import Path
import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
from matplotlib.gridspec import GridSpec

from fictrac_subject.session_log import load_session_frame

# Configuratie
plt.rcParams['figure.facecolor'] = 'white'
plt.rcParams['axes.facecolor'] = 'white'
plt.rcParams['axes.grid'] = True
plt.rcParams['grid.alpha'] = 0.3
plt.rcParams['font.size'] = 10


def load_records(log_path: str) -> pd.DataFrame:
    """Alle records (kind, frame, ...) als één platte tabel."""
    rows = []
    with open(log_path, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                rows.append(json.loads(line))
            except json.JSONDecodeError:
                continue
    if not rows:
        return pd.DataFrame(columns=['kind', 'frame', 'timestamp'])
    return pd.json_normalize(rows)


def load_data(log_path: str) -> pd.DataFrame:
    """Laad de Transformation records en voeg afgeleide kolommen toe."""
    df = load_session_frame(log_path)
    if len(df) > 0:
        df['t_s'] = (df['timestamp'] - df['timestamp'].iloc[0]) / 1000.0
        step = np.hypot(df['actual_x'], df['actual_z'])
        df['distance'] = step.cumsum()
    return df


def _block_spans(records: pd.DataFrame):
    """(start_frame, end_frame) van elke secondary periode."""
    if 'kind' not in records.columns:
        return []
    tr = records[records['kind'] == 'BlockTransition'].sort_values('frame')
    spans = []
    start = None
    for _, row in tr.iterrows():
        if row['state'] == 'secondary':
            start = row['frame']
        elif start is not None:
            spans.append((start, row['frame']))
            start = None
    if start is not None and len(records) > 0:
        spans.append((start, records['frame'].max()))
    return spans


def plot_overview_dashboard(df: pd.DataFrame, records: pd.DataFrame, output_path: Path = None, show: bool = False):
    """
    Plot 1: 4-panel overzicht
    - Trajectory (x/z)
    - Heading over frames
    - Stapgrootte per frame
    - Aantal records per kind
    """
    fig = plt.figure(figsize=(14, 10))
    gs = GridSpec(2, 2, figure=fig, hspace=0.3, wspace=0.25)

    ax1 = fig.add_subplot(gs[0, 0])
    ax1.plot(df['pos_x'], df['pos_z'], 'b-', linewidth=1.5)
    if len(df) > 0:
        ax1.plot(df['pos_x'].iloc[0], df['pos_z'].iloc[0], 'go', label='start')
        ax1.plot(df['pos_x'].iloc[-1], df['pos_z'].iloc[-1], 'ro', label='einde')
    ax1.set_xlabel('x')
    ax1.set_ylabel('z')
    ax1.set_title('Trajectory')
    ax1.set_aspect('equal', adjustable='datalim')
    ax1.legend(loc='upper left', fontsize=8)

    ax2 = fig.add_subplot(gs[0, 1])
    ax2.plot(df['frame'], df['heading'], 'b.', markersize=2)
    ax2.set_xlabel('Frame')
    ax2.set_ylabel('Heading (deg)')
    ax2.set_ylim(0, 360)
    ax2.set_title('Heading')

    ax3 = fig.add_subplot(gs[1, 0])
    ax3.plot(df['frame'], np.hypot(df['attempted_x'], df['attempted_z']), 'c-', linewidth=1)
    ax3.set_xlabel('Frame')
    ax3.set_ylabel('|translatie|')
    ax3.set_title('Stapgrootte per frame')

    ax4 = fig.add_subplot(gs[1, 1])
    if 'kind' in records.columns and len(records) > 0:
        counts = records['kind'].value_counts()
        ax4.barh(counts.index, counts.values, color='steelblue')
    ax4.set_xlabel('Aantal')
    ax4.set_title('Records per kind')

    plt.tight_layout()

    if output_path:
        plt.savefig(output_path / 'overview_dashboard.png', dpi=150, bbox_inches='tight')

    if show:
        plt.show()
    plt.close()


def plot_heading_blocks(df: pd.DataFrame, records: pd.DataFrame, output_path: Path = None, show: bool = False):
    """Plot 2: heading met secondary blokken (grijs) en spin gate events (rood)."""
    fig, axes = plt.subplots(2, 1, figsize=(14, 8), sharex=True)

    ax1 = axes[0]
    for start, end in _block_spans(records):
        ax1.axvspan(start, end, color='#e0e0e0', alpha=0.8)
    ax1.plot(df['frame'], df['heading'], 'b.', markersize=2, label='heading')
    if 'kind' in records.columns:
        slips = records[records['kind'] == 'SlipAttempt']
        if len(slips) > 0:
            ax1.plot(slips['frame'], np.mod(slips['slip_heading_degs'], 360.0), 'm-',
                     linewidth=1, alpha=0.7, label='slip heading')
    ax1.set_ylabel('Heading (deg)')
    ax1.set_title('Heading en primary/secondary blokken')
    ax1.legend(loc='upper right', fontsize=8)

    ax2 = axes[1]
    if 'kind' in records.columns:
        gated = records[records['kind'] == 'SpinGated']
        if len(gated) > 0:
            ax2.plot(gated['frame'], gated['angular_speed'], 'r.', markersize=3, label='gated')
            ax2.axhline(y=gated['threshold'].iloc[0], color='gray', linestyle='--', alpha=0.5, label='threshold')
            ax2.legend(loc='upper right', fontsize=8)
    ax2.set_xlabel('Frame')
    ax2.set_ylabel('Hoeksnelheid (deg/s)')
    ax2.set_title('Spin gate')

    plt.tight_layout()

    if output_path:
        plt.savefig(output_path / 'heading_blocks.png', dpi=150, bbox_inches='tight')

    if show:
        plt.show()
    plt.close()


def plot_translation(df: pd.DataFrame, output_path: Path = None, show: bool = False):
    """Plot 3: attempted vs actual translatie (verschil = collision correctie)."""
    fig, axes = plt.subplots(3, 1, figsize=(12, 10), sharex=True)

    axes[0].plot(df['frame'], df['attempted_x'], 'b-', linewidth=1, label='attempted x')
    axes[0].plot(df['frame'], df['actual_x'], 'g--', linewidth=1, label='actual x')
    axes[0].set_ylabel('x')
    axes[0].legend(loc='upper right', fontsize=8)

    axes[1].plot(df['frame'], df['attempted_z'], 'b-', linewidth=1, label='attempted z')
    axes[1].plot(df['frame'], df['actual_z'], 'g--', linewidth=1, label='actual z')
    axes[1].set_ylabel('z')
    axes[1].legend(loc='upper right', fontsize=8)

    if 'distance' in df.columns:
        axes[2].plot(df['frame'], df['distance'], 'k-', linewidth=1.5)
    axes[2].set_xlabel('Frame')
    axes[2].set_ylabel('Afgelegde afstand')

    plt.tight_layout()

    if output_path:
        plt.savefig(output_path / 'translation.png', dpi=150, bbox_inches='tight')

    if show:
        plt.show()
    plt.close()


def generate_summary(df: pd.DataFrame, records: pd.DataFrame, log_path: str) -> str:
    """Genereer tekstuele samenvatting."""
    summary = []
    summary.append("=" * 60)
    summary.append("FICTRAC SUBJECT SESSIE RAPPORT")
    summary.append(f"Bestand: {log_path}")
    summary.append("=" * 60)
    summary.append("")

    summary.append("STATISTIEKEN:")
    summary.append(f"  Frames met beweging: {len(df)}")
    if len(df) > 0:
        summary.append(f"  Frames: {df['frame'].iloc[0]} .. {df['frame'].iloc[-1]}")
        summary.append(f"  Duur: {df['t_s'].iloc[-1]:.2f}s")
        summary.append(f"  Afstand: {df['distance'].iloc[-1]:.3f}")
        summary.append(f"  Eindpositie: ({df['pos_x'].iloc[-1]:.3f}, {df['pos_z'].iloc[-1]:.3f})")
        summary.append(f"  Eind heading: {df['heading'].iloc[-1]:.2f} deg")

    summary.append("")
    summary.append("RECORDS:")
    if 'kind' in records.columns:
        for kind, n in records['kind'].value_counts().items():
            summary.append(f"  {kind}: {n}")

    summary.append("")
    summary.append("=" * 60)

    return "\n".join(summary)


def main():
    parser = argparse.ArgumentParser(
        description='Visualisatie van een FicTrac subject sessielog'
    )
    parser.add_argument('log_file', help='Input JSONL sessielog')
    parser.add_argument('--output-dir', '-o', help='Output directory voor plots')
    parser.add_argument('--show', '-s', action='store_true', help='Toon plots interactief')
    parser.add_argument('--summary', action='store_true', help='Print alleen tekstuele samenvatting')

    args = parser.parse_args()

    log_path = Path(args.log_file)
    if not log_path.exists():
        print(f"[!] Bestand niet gevonden: {log_path}")
        return 1

    print(f"[i] Laden: {log_path}")
    df = load_data(str(log_path))
    records = load_records(str(log_path))
    print(f"[i] {len(df)} transformaties, {len(records)} records geladen")

    summary = generate_summary(df, records, str(log_path))
    print(summary)

    if args.summary:
        return 0

    output_path = None
    if args.output_dir:
        output_path = Path(args.output_dir)
        output_path.mkdir(parents=True, exist_ok=True)
        print(f"\n[i] Output directory: {output_path}")

    print("\n[i] Genereren plots...")

    plot_overview_dashboard(df, records, output_path, args.show)
    plot_heading_blocks(df, records, output_path, args.show)
    plot_translation(df, output_path, args.show)

    print("\n[i] Klaar!")

    return 0


if __name__ == "__main__":
    sys.exit(main())
