"""
Replay raw model output through the command pipeline offline.

Usage:
    python scripts/replay_envelope.py raw.txt --utterance "add a tree"
    cat raw.txt | python scripts/replay_envelope.py - --scene scene.json --out next.json
"""

import argparse
import json
import sys
from pathlib import Path

from scenedirector.ai_pipeline import run_pipeline
from scenedirector.scene import SceneGraph, apply_commands, create_empty_scene


def main() -> int:
    parser = argparse.ArgumentParser(description="Run raw model text through the pipeline and reducer")
    parser.add_argument("raw", help="File with the raw model reply, or - for stdin")
    parser.add_argument("--utterance", default="", help="Utterance the reply answers (drives safety/coverage)")
    parser.add_argument("--scene", type=Path, help="Starting scene graph JSON (default: empty scene)")
    parser.add_argument("--out", type=Path, help="Write the resulting scene graph here")

    args = parser.parse_args()

    raw = sys.stdin.read() if args.raw == "-" else Path(args.raw).read_text(encoding="utf-8")
    scene = (
        SceneGraph.model_validate_json(args.scene.read_text(encoding="utf-8"))
        if args.scene
        else create_empty_scene()
    )

    print(f"[*] Replaying {len(raw)} chars against {len(scene.order)} object(s)...")
    result = run_pipeline(raw, args.utterance, scene)

    print(json.dumps(result.envelope.to_wire(), indent=2))
    if result.refusal or result.envelope.refused:
        print(f"[-] Refused: {result.envelope.refusal_reason} ({result.envelope.notes})")
        return 1

    if result.guard is not None and result.guard.changed:
        print(f"[*] {result.guard.note()}")

    next_scene = apply_commands(scene, result.envelope.commands)
    print(f"[+] Applied {len(result.envelope.commands)} command(s); order = {next_scene.order}")

    if args.out:
        args.out.write_text(json.dumps(next_scene.to_wire(), indent=2), encoding="utf-8")
        print(f"[+] Wrote {args.out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
