from enum import Enum
from typing import Optional, TextIO

from brewery.output import Output

ACCEPTED = {"y", "yes"}
DECLINED = {"n", "no"}

PROMPT = "Do you want to proceed with the installation? [Y/y/yes/N/n]"
INVALID = "Invalid input. Please enter 'Y', 'y', or 'yes' to proceed, or 'N' to abort."


class Decision(Enum):
    PROCEED = "proceed"
    ABORT = "abort"


def decide(line: str) -> Optional[Decision]:
    answer = line.strip().lower()
    if answer in ACCEPTED:
        return Decision.PROCEED
    if answer in DECLINED:
        return Decision.ABORT
    return None


def ask_input(stream: TextIO, output: Output) -> Decision:
    """Prompt until the user answers yes or no. A closed stream counts as no."""
    output.ohai(PROMPT, essential=True)
    while True:
        line = stream.readline()
        if line == "":
            return Decision.ABORT
        decision = decide(line)
        if decision is Decision.PROCEED:
            output.print("Proceeding with installation...")
            return decision
        if decision is Decision.ABORT:
            return decision
        output.print(INVALID)
