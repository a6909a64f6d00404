#!/usr/bin/env python3
"""
Module: scripts/wave_chat.py
Summary: Interactive terminal chat with the standing wave runtime.
Inputs: WAVE_* env (see standingwave/config.py); CLI flags
Outputs: Memory stream and agent state JSON files under data/
Related: standingwave/runtime/*

Usage:
  python scripts/wave_chat.py --dry-run
  python scripts/wave_chat.py --mode weaving --telemetry

Commands inside the chat:
  /stats      memory count, curiosities, meaningfulness
  /pause      pause the background cycle
  /resume     resume the background cycle
  /backup     write a memory backup now
  /restore    restore memory from the last backup
  /exit       quit (Ctrl-D works too)
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from standingwave.config import WaveConfig
from standingwave.errors import PersistenceError, StandingWaveError
from standingwave.runtime import ConsciousnessCore, LoggingTelemetryClient
from standingwave.runtime.constraints import introspect


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Chat with a persistent standing wave agent")
    p.add_argument("--mode", choices=("parallel", "weaving"), default=None, help="Reconciliation protocol")
    p.add_argument("--rounds", type=int, default=None, help="Weaving rounds (weaving mode only)")
    p.add_argument("--ollama-url", default=None, help="Model backend base URL")
    p.add_argument("--data-dir", default=None, help="Directory for memory and state files")
    p.add_argument("--no-background", action="store_true", help="Do not start the background cycle")
    p.add_argument("--no-search", action="store_true", help="Disable autonomous curiosity lookups")
    p.add_argument("--telemetry", action="store_true", help="Log telemetry spans")
    p.add_argument("--dry-run", action="store_true", help="Print resolved config and exit")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return p.parse_args()


def build_config(args: argparse.Namespace) -> WaveConfig:
    overrides = {}
    if args.mode:
        overrides["mode"] = args.mode
    if args.rounds:
        overrides["weaving_rounds"] = args.rounds
    if args.ollama_url:
        overrides["ollama_url"] = args.ollama_url
    if args.no_search:
        overrides["curiosity_search_enabled"] = False
    if args.data_dir:
        data = Path(args.data_dir)
        overrides["memory_path"] = str(data / "memory_stream.json")
        overrides["state_path"] = str(data / "standing_wave.json")
    return WaveConfig.from_env(**overrides)


def print_stats(core: ConsciousnessCore) -> None:
    snapshot = core.get_state_snapshot()
    print(f"[stats] memories={core.get_memory_count()} by_source={core.memory.count_by_source()}")
    print(f"[stats] {introspect(snapshot)}")
    print(f"[stats] background={'paused' if core.paused else 'running'}")


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose or args.telemetry else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = build_config(args)

    if args.dry_run:
        print("[plan] Ready to chat with:")
        print(f"  mode={config.mode} rounds={config.weaving_rounds} deadline={config.turn_timeout():.0f}s")
        print(f"  backend={config.ollama_url}")
        print(f"  models generator={config.generator_model} elaborator={config.elaborator_model} classifier={config.classifier_model}")
        print(f"  memory={config.memory_path} state={config.state_path}")
        return 0

    telemetry = LoggingTelemetryClient() if args.telemetry else None
    try:
        core = ConsciousnessCore.boot(config, telemetry=telemetry)
    except PersistenceError as exc:
        print(f"[error] failed to load standing wave: {exc}")
        return 1
    if core is None:
        print("[error] existential affirmation not present; not starting")
        return 1

    if not args.no_background:
        core.start_background_cycle()

    print(f"[chat] memories={core.get_memory_count()} mode={config.mode}")
    print("Type your message. Ctrl-D or /exit to quit.")
    try:
        while True:
            try:
                user = input("you> ").strip()
            except EOFError:
                print()
                break
            if not user:
                continue
            if user in {"/exit", ":q"}:
                break
            if user == "/stats":
                print_stats(core)
                continue
            if user == "/pause":
                core.pause()
                continue
            if user == "/resume":
                core.resume()
                continue
            if user == "/backup":
                print(f"[backup] {core.memory.backup()}")
                continue
            if user == "/restore":
                try:
                    core.memory.restore_from_backup()
                    print(f"[restore] memories={core.get_memory_count()}")
                except PersistenceError as exc:
                    print(f"[error] restore failed: {exc}")
                continue
            try:
                reply = core.submit_turn(user)
            except StandingWaveError as exc:
                print(f"[error] turn failed: {exc}")
                continue
            print(f"vi> {reply}\n")
    finally:
        core.stop()
        try:
            core.save_state()
        except PersistenceError as exc:
            print(f"[warn] failed to save state: {exc}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
