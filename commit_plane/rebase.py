import enum
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from commit_plane.commit import Commit


class RebaseState(enum.Enum):
    INIT = "init"
    FAST_FORWARD = "fast-forward"
    ALREADY_UP_TO_DATE = "already-up-to-date"
    SCANNING = "scanning"
    REPLAYING = "replaying"
    DONE = "done"


class ReplayAction(enum.Enum):
    CONTINUE = "c"
    SKIP = "s"
    REWORD = "m"


@dataclass(frozen=True)
class ReplayDecision:
    action: ReplayAction
    message: str | None = None


CONTINUE = ReplayDecision(ReplayAction.CONTINUE)
SKIP = ReplayDecision(ReplayAction.SKIP)


def reword(message: str) -> ReplayDecision:
    return ReplayDecision(ReplayAction.REWORD, message)


# (commit about to be replayed, whether skipping it is allowed) -> decision
DecisionProvider = Callable[[Commit, bool], ReplayDecision]


def continue_all(commit: Commit, can_skip: bool) -> ReplayDecision:
    return CONTINUE


class ScriptedDecisions:
    """
    Replays a fixed list of decisions, then continues.

    Every prompt is recorded in ``asked`` as ``(commit message, can_skip)``.
    """

    def __init__(self, decisions: Iterable[ReplayDecision]) -> None:
        self.pending = list(decisions)
        self.asked: list[tuple[str, bool]] = []

    def __call__(self, commit: Commit, can_skip: bool) -> ReplayDecision:
        self.asked.append((commit.message, can_skip))
        if not self.pending:
            return CONTINUE
        return self.pending.pop(0)


class ConsoleDecisions:
    """
    Line-oriented prompt: (c)ontinue, (s)kip or change the (m)essage.

    Unknown answers, and skips where skipping is not allowed, ask again.
    """

    def __init__(
        self,
        read_line: Callable[[], str] = input,
        write: Callable[[str], None] = print,
    ) -> None:
        self.read_line = read_line
        self.write = write

    def __call__(self, commit: Commit, can_skip: bool) -> ReplayDecision:
        while True:
            self.write("Currently replaying:")
            self.write("====")
            self.write(f"Commit {commit.id}.")
            self.write(commit.timestamp.strftime("%Y-%m-%d %H:%M:%S"))
            self.write(commit.message)
            self.write(
                "Would you like to (c)ontinue, (s)kip this commit, "
                "or change this commit's (m)essage?"
            )
            answer = self.read_line().strip()
            if answer == ReplayAction.CONTINUE.value:
                return CONTINUE
            if answer == ReplayAction.SKIP.value and can_skip:
                return SKIP
            if answer == ReplayAction.REWORD.value:
                self.write("Please enter a new message for this commit.")
                return reword(self.read_line())
