"""
Named spinner animations.

Each spinner is a list of frames plus the number of milliseconds each frame
stays on screen. The frame shown is chosen from the time since the job
started, so every job animates independently and a given snapshot always
renders the same frame.
"""

from dataclasses import dataclass
from typing import Dict, Tuple

DEFAULT_SPINNER = "mini_dot"


@dataclass(frozen=True)
class Spinner:
    frames: Tuple[str, ...]
    frame_ms: int = 200

    def frame_at(self, elapsed_seconds: float) -> str:
        """Return the frame for a job that has been running for elapsed_seconds."""
        index = int(max(elapsed_seconds, 0.0) * 1000) // self.frame_ms
        return self.frames[index % len(self.frames)]


SPINNERS: Dict[str, Spinner] = {
    # Classic
    "line": Spinner(("|", "/", "-", "\\")),
    "dot": Spinner(("⣾", "⣽", "⣻", "⢿", "⡿", "⣟", "⣯", "⣷")),
    "mini_dot": Spinner(("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")),
    "jump": Spinner(("⢄", "⢂", "⢁", "⡁", "⡈", "⡐", "⡠")),
    "pulse": Spinner(("█", "▓", "▒", "░")),
    "points": Spinner(("∙∙∙", "●∙∙", "∙●∙", "∙∙●")),
    "meter": Spinner(("▱▱▱", "▰▱▱", "▰▰▱", "▰▰▰", "▰▰▱", "▰▱▱", "▱▱▱"), 400),
    "hamburger": Spinner(("☱", "☲", "☴", "☲")),
    "ellipsis": Spinner(("   ", ".  ", ".. ", "...")),
    # Minimal
    "arrow": Spinner(("←", "↖", "↑", "↗", "→", "↘", "↓", "↙")),
    "triangle": Spinner(("◢", "◣", "◤", "◥")),
    "square": Spinner(("◰", "◳", "◲", "◱")),
    "circle": Spinner(("◴", "◷", "◶", "◵")),
    "bounce": Spinner(("⠁", "⠂", "⠄", "⠂")),
    "arc": Spinner(("◜", "◠", "◝", "◞", "◡", "◟")),
    "box_bounce": Spinner(("▖", "▘", "▝", "▗")),
    "star": Spinner(("✶", "✸", "✹", "✺", "✹", "✷")),
    # Growing
    "grow_horizontal": Spinner(("▏", "▎", "▍", "▌", "▋", "▊", "▉", "█", "▉", "▊", "▋", "▌", "▍", "▎")),
    "grow_vertical": Spinner(("▁", "▂", "▃", "▄", "▅", "▆", "▇", "█", "▇", "▆", "▅", "▄", "▃", "▂")),
    # Wide (two columns per frame)
    "globe": Spinner(("🌍", "🌎", "🌏"), 400),
    "moon": Spinner(("🌑", "🌒", "🌓", "🌔", "🌕", "🌖", "🌗", "🌘"), 400),
    "clock": Spinner(("🕐", "🕑", "🕒", "🕓", "🕔", "🕕", "🕖", "🕗", "🕘", "🕙", "🕚", "🕛")),
    "runner": Spinner(("🚶", "🏃"), 400),
}


def get_spinner(name: str) -> Spinner:
    """Look up a spinner by name, falling back to the default for unknown names."""
    return SPINNERS.get(name) or SPINNERS[DEFAULT_SPINNER]
