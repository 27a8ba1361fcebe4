"""
CLI to monitor the local camera for a while -> JSON state.
"""
from __future__ import annotations
import argparse, json, logging
from proctor.config import Settings
from proctor.live import run_headless

def main():
    p = argparse.ArgumentParser()
    p.add_argument("--seconds", type=float, default=30.0, help="How long to monitor")
    p.add_argument("--camera", type=int, default=None, help="Camera index (defaults to CAMERA_INDEX)")
    p.add_argument("--out", default="output/monitor_state.json", help="Path to output JSON")
    args = p.parse_args()

    settings = Settings()
    logging.basicConfig(level=settings.LOG_LEVEL)
    state = run_headless(settings, args.seconds, camera_index=args.camera)
    result = state.model_dump()
    print(json.dumps(result, indent=2, ensure_ascii=False))

    # Also write to file
    import os
    os.makedirs(os.path.dirname(args.out) or ".", exist_ok=True)
    with open(args.out, "w", encoding="utf-8") as f:
        json.dump(result, f, indent=2, ensure_ascii=False)
    print(f"✅ State written to {args.out}")

if __name__ == "__main__":
    main()
