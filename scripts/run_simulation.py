#!/usr/bin/env python3
"""Helper script to generate a synthetic session and localize over it."""
import argparse
import os
import subprocess

parser = argparse.ArgumentParser()
parser.add_argument("--out", required=True)
parser.add_argument("--steps", type=int, default=10)
parser.add_argument("--workers", type=int, default=1)
args = parser.parse_args()

session_dir = os.path.abspath(args.out)

# run simulator
subprocess.check_call(["python3", "-m", "simulation.generate_synthetic", "--out", session_dir, "--steps", str(args.steps)])
# run localizer
outdir = os.path.join(session_dir, "artifacts")
subprocess.check_call([
    "python3", "-m", "localization.localizer",
    "--session", session_dir, "--out", outdir,
    "--workers", str(args.workers), "--dxf",
])
print("Done. artifacts in:", outdir)
