from dataclasses import dataclass

from spotify import PlaybackSnapshot

# Position (ms) under which a looping track counts as restarted.
LOOP_RESTART_WINDOW_MS = 5500


# -------------------------
# Last reported condition of the tracked track
# -------------------------
@dataclass(frozen=True)
class TrackState:
    id: str
    progress_ms: int
    duration_ms: int
    scrobbled: bool


@dataclass(frozen=True)
class EmitDecision:
    emit: bool
    now_playing: bool
    candidate: TrackState

    @property
    def kind(self) -> str:
        return "playing_now" if self.now_playing else "single"


def reached_half(progress_ms: int, duration_ms: int) -> bool:
    """Halfway threshold used for the emit rule (inclusive)."""
    if duration_ms <= 0:
        return True
    return progress_ms >= duration_ms / 2


def past_half(progress_ms: int, duration_ms: int) -> bool:
    """Halfway threshold used to pick the listen kind (exclusive)."""
    if duration_ms <= 0:
        return True
    return progress_ms > duration_ms / 2


def candidate_scrobbled(previous: TrackState | None, snapshot: PlaybackSnapshot) -> bool:
    inherited = previous is not None and previous.scrobbled
    return inherited or past_half(snapshot.progress_ms, snapshot.duration_ms)


def should_emit(previous: TrackState | None, snapshot: PlaybackSnapshot) -> bool:
    if previous is None:
        return True
    if snapshot.track_id != previous.id:
        return True

    looped = snapshot.is_looping and snapshot.progress_ms <= LOOP_RESTART_WINDOW_MS
    if previous.scrobbled and looped:
        return True
    if not previous.scrobbled and reached_half(snapshot.progress_ms, snapshot.duration_ms):
        return True
    return False


def decide(previous: TrackState | None, snapshot: PlaybackSnapshot) -> EmitDecision:
    """Decide whether this observation should be reported, and how.

    Pure: the result depends only on the arguments. Every emit starts or
    completes an occurrence, so the state to store after a successful emit
    is scrobbled exactly when the emitted event is a completed listen.
    """
    emit = should_emit(previous, snapshot)
    completed = past_half(snapshot.progress_ms, snapshot.duration_ms)
    scrobbled = completed if emit else candidate_scrobbled(previous, snapshot)
    return EmitDecision(
        emit=emit,
        now_playing=not completed,
        candidate=TrackState(
            id=snapshot.track_id,
            progress_ms=snapshot.progress_ms,
            duration_ms=snapshot.duration_ms,
            scrobbled=scrobbled,
        ),
    )
