"""CLI entry point."""

from __future__ import annotations

import argparse
import asyncio
import os
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

from .audio_utils import iter_wav_chunks
from .config import Config, load_config, save_config
from .logging_utils import setup_logging
from .models import MeetingConfig, MeetingPlatform, MeetingSnapshot, MeetingTemplate, Participant
from .orchestrator import build_orchestrator, build_profile_store
from .renderer import render_minutes
from .session_io import load_profiles, load_snapshot, save_profiles, save_snapshot
from .storage import build_session_basename, ensure_structure, unique_path
from .voice_profiles import GLOBAL_NAMESPACE, VoiceProfileStore

DEFAULT_CONFIG = "meetsense_config.yml"
PROFILES_FILE = "voice_profiles.json"


def _parse_participant(value: str, index: int) -> Participant:
    name, _, email = value.partition(":")
    name = name.strip()
    if not name:
        raise argparse.ArgumentTypeError(f"Participant needs a name: {value!r}")
    return Participant(id=f"participant_{index}", name=name, email=email.strip())


def _load_or_default(path: str) -> Config:
    if path and os.path.exists(path):
        return load_config(path)
    return Config()


async def _run_file(
    cfg: Config,
    audio_path: str,
    meeting: MeetingConfig,
    profiles: VoiceProfileStore,
) -> MeetingSnapshot:
    orchestrator = build_orchestrator(cfg, profiles=profiles)
    async with orchestrator:
        session_id = await orchestrator.start_meeting(meeting)
        for chunk in iter_wav_chunks(audio_path, chunk_ms=cfg.sessions.chunk_ms):
            if cfg.sessions.self_attributed:
                chunk = replace(chunk, self_attributed=True)
            await orchestrator.ingest_audio(session_id, chunk)
        return await orchestrator.end_meeting(session_id)


def _print_snapshot(snapshot: MeetingSnapshot) -> None:
    print(f"Session: {snapshot.title} ({snapshot.id})")
    print(f"Status: {snapshot.status.value}")
    print(f"Started: {snapshot.start_time.isoformat()}")
    if snapshot.end_time:
        print(f"Ended: {snapshot.end_time.isoformat()}")
    print(f"Segments: {len(snapshot.transcript)}")
    print(f"Action items: {len(snapshot.action_items)}")
    for item in snapshot.action_items:
        print(f"  [{item.priority.value}] {item.description} -> {item.assignee}")
    print(f"Decisions: {len(snapshot.decisions)}")
    for decision in snapshot.decisions:
        print(f"  [{decision.impact.value}] {decision.description}")
    if snapshot.summary and snapshot.summary.main_topics:
        print(f"Topics: {', '.join(snapshot.summary.main_topics)}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="meetsense")
    sub = parser.add_subparsers(dest="command")

    process_cmd = sub.add_parser("process")
    process_cmd.add_argument("audio_path", help="16-bit PCM WAV file of the meeting.")
    process_cmd.add_argument("--title", default="Meeting", help="Meeting title.")
    process_cmd.add_argument("--config", default=DEFAULT_CONFIG, help="Config.")
    process_cmd.add_argument("--base-dir", help="Base output directory.")
    process_cmd.add_argument(
        "--recognizer", choices=["whisper", "mock"], help="Override speech recognizer."
    )
    process_cmd.add_argument("--model", help="Whisper model.")
    process_cmd.add_argument("--language", help="Language code.")
    process_cmd.add_argument(
        "--platform",
        choices=[p.value for p in MeetingPlatform],
        default=MeetingPlatform.ZOOM.value,
        help="Meeting platform.",
    )
    process_cmd.add_argument(
        "--template", choices=[t.value for t in MeetingTemplate], help="Meeting template."
    )
    process_cmd.add_argument(
        "--participant",
        action="append",
        default=[],
        help="Participant as NAME or NAME:EMAIL. Repeatable.",
    )
    process_cmd.add_argument(
        "--vocab", action="append", default=[], help="Custom vocabulary term. Repeatable."
    )
    process_cmd.add_argument("--chunk-ms", type=int, help="Chunk length in milliseconds.")
    process_cmd.add_argument(
        "--no-ai", action="store_true", help="Transcribe only, skip content analysis."
    )

    show_cmd = sub.add_parser("show")
    show_cmd.add_argument("path", help="Path to .session.json")

    note_cmd = sub.add_parser("note")
    note_cmd.add_argument("path", help="Path to .session.json")
    note_cmd.add_argument("--out", help="Write minutes here instead of stdout.")

    config_cmd = sub.add_parser("config")
    config_cmd.add_argument("--path", default=DEFAULT_CONFIG, help="Config file to write.")
    config_cmd.add_argument("--base-dir", help="Base output directory.")
    config_cmd.add_argument("--force", action="store_true", help="Overwrite existing file.")

    args = parser.parse_args(argv)

    if args.command == "process":
        if not os.path.exists(args.audio_path):
            print(f"Audio file not found: {args.audio_path}")
            return 1
        cfg = _load_or_default(args.config)
        if args.recognizer:
            cfg.transcription.recognizer = args.recognizer
        if args.model:
            cfg.transcription.whisper_model = args.model
        if args.language:
            cfg.transcription.language = args.language
        if args.chunk_ms:
            cfg.sessions.chunk_ms = args.chunk_ms

        paths = ensure_structure(args.base_dir or cfg.base_dir or os.getcwd())
        logger, log_path = setup_logging(paths["logs"], cfg.log_level, console=True)

        try:
            participants = [
                _parse_participant(value, index)
                for index, value in enumerate(args.participant, start=1)
            ]
        except argparse.ArgumentTypeError as exc:
            print(str(exc))
            return 2
        meeting = MeetingConfig(
            title=args.title,
            participants=participants,
            platform=MeetingPlatform(args.platform),
            template=MeetingTemplate(args.template) if args.template else None,
            custom_vocabulary=list(args.vocab),
            ai_processing_enabled=not args.no_ai,
        )

        profiles = build_profile_store(cfg)
        profiles_path = os.path.join(paths["profiles"], PROFILES_FILE)
        if cfg.voice_profiles.scope == "global" and os.path.exists(profiles_path):
            loaded = profiles.load(load_profiles(profiles_path), GLOBAL_NAMESPACE)
            logger.info("Loaded %d voice profiles from %s", loaded, profiles_path)

        try:
            snapshot = asyncio.run(_run_file(cfg, args.audio_path, meeting, profiles))
        except ValueError as exc:
            logger.error("Processing %s failed: %s", args.audio_path, exc)
            print(f"Processing failed: {exc}")
            return 1

        if cfg.voice_profiles.scope == "global":
            save_profiles(profiles_path, profiles.profiles(GLOBAL_NAMESPACE))

        basename = build_session_basename(args.title, datetime.now())
        session_path = unique_path(paths["sessions"], basename, ".session.json")
        save_snapshot(session_path, snapshot)
        note_path = unique_path(paths["notes"], basename, ".md")
        with open(note_path, "w", encoding="utf-8") as handle:
            handle.write(render_minutes(snapshot))
        _print_snapshot(snapshot)
        print(f"Session saved: {session_path}")
        print(f"Note saved: {note_path}")
        print(f"Log: {log_path}")
        return 0

    if args.command == "show":
        if not args.path.endswith(".session.json"):
            print("Unsupported file. Use .session.json")
            return 1
        _print_snapshot(load_snapshot(args.path))
        return 0

    if args.command == "note":
        minutes = render_minutes(load_snapshot(args.path))
        if args.out:
            with open(args.out, "w", encoding="utf-8") as handle:
                handle.write(minutes)
            print(f"Note saved: {args.out}")
        else:
            print(minutes)
        return 0

    if args.command == "config":
        if os.path.exists(args.path) and not args.force:
            print(f"{args.path} already exists. Use --force to overwrite.")
            return 1
        cfg = Config(base_dir=args.base_dir or "")
        save_config(args.path, cfg)
        print(f"Wrote {args.path}")
        return 0

    parser.print_help()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
