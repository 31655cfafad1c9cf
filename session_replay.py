"""
session_replay.py

Offline replay of a full play session against a synthetic metronome track.

Pipeline
- Builds a deterministic click track (demo_track)
- Runs BeatDetector on a background AnalysisWorker, printing progress
- Schedules hit circles and drives a PlaySession frame by frame from a simulated playback clock
- Feeds cursors from a scripted player profile through the CursorFeed
- Prints the end-of-session report as JSON

Useful for checking timing windows and scoring configuration without a camera or audio device.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from analysis_worker import AnalysisWorker
from beat_detector import AnalysisError, BeatDetector
from config import ConfigError, EngineConfig, load_config
import demo_track
from play_session import PlaySession, SessionPhase


def run_replay(
    *,
    config: EngineConfig,
    bpm: float,
    duration_seconds: float,
    profile: str,
    field_width: float = 1280.0,
    field_height: float = 720.0,
    frame_ms: float = 1000.0 / 60.0,
    progress_stream=None,
) -> Dict[str, Any]:
    track = demo_track.build_click_track(bpm=bpm, duration_seconds=duration_seconds)
    player = demo_track.build_player(profile)

    def print_progress(percent: int) -> None:
        if progress_stream is not None:
            progress_stream.write(f"\ranalysis: {percent:3d}%")
            if percent >= 100:
                progress_stream.write("\n")
            progress_stream.flush()

    with AnalysisWorker(BeatDetector(config.analysis)) as worker:
        ticket = worker.submit(track.samples, track.sample_rate, on_progress=print_progress)
        analysis = ticket.future.result()

    session = PlaySession.from_analysis(analysis, field_width=field_width, field_height=field_height, config=config)
    if not session.start():
        return {"ok": False, "error": "No playable targets in track", "bpm": analysis.bpm}

    clock = session.timing_model
    feed = session.cursor_feed
    frame_index = 0
    event_log: List[Dict[str, Any]] = []
    while session.phase() == SessionPhase.PLAYING:
        playback_ms = frame_index * float(frame_ms)
        clock.update_playback_ms(playback_ms)
        if playback_ms >= track.duration_ms:
            clock.mark_ended()
        feed.publish(player.cursors_at(clock.song_time_ms(), session.visible_circles()))
        outcome = session.tick()
        for event in outcome.events:
            event_log.append(
                {"circle_id": event.circle_id, "kind": event.kind.value, "at_ms": round(event.at_ms, 1), "delta_ms": round(event.delta_ms, 1)}
            )
        frame_index += 1

    return {
        "ok": True,
        "detected_bpm": round(float(analysis.bpm), 2),
        "track_bpm": float(track.bpm),
        "beats": len(analysis.beats),
        "report": session.report().to_dict(),
        "events": event_log,
    }


def main(argv: Optional[List[str]] = None) -> int:
    argument_parser = argparse.ArgumentParser(description="Replay a scripted play session on a synthetic track")
    argument_parser.add_argument("--bpm", type=float, default=120.0, help="Tempo of the synthetic click track.")
    argument_parser.add_argument("--seconds", type=float, default=20.0, help="Length of the synthetic track.")
    argument_parser.add_argument(
        "--profile",
        default="steady",
        choices=sorted(demo_track.PLAYER_PROFILES),
        help="Scripted player timing profile.",
    )
    argument_parser.add_argument("--fps", type=float, default=60.0, help="Simulated display frame rate.")
    argument_parser.add_argument("--events", action="store_true", help="Include every judged event in the output.")
    argument_parser.add_argument("--verbose", action="store_true", help="Log pipeline activity to stderr.")
    parsed_args = argument_parser.parse_args(argv)

    if parsed_args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        engine_config, _config_path = load_config()
    except ConfigError as exception:
        print(json.dumps({"ok": False, "error": str(exception)}, ensure_ascii=False, indent=2))
        return 2

    try:
        payload = run_replay(
            config=engine_config,
            bpm=parsed_args.bpm,
            duration_seconds=parsed_args.seconds,
            profile=parsed_args.profile,
            frame_ms=1000.0 / max(1.0, float(parsed_args.fps)),
            progress_stream=sys.stderr,
        )
    except AnalysisError as exception:
        print(json.dumps({"ok": False, "error": f"Analysis failed: {exception}"}, ensure_ascii=False, indent=2))
        return 1

    if not parsed_args.events:
        payload.pop("events", None)
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0 if payload.get("ok") else 1


if __name__ == "__main__":
    raise SystemExit(main())
