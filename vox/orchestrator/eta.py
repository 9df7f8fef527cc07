BASE_WPM = 160.0
DONE_MARKER = "done"

def remaining_seconds(total_words: int, spoken_words: int, speed: float, base_wpm: float = BASE_WPM) -> int:
    """Linear estimate of the time left, in whole seconds."""
    remaining_words = max(total_words - spoken_words, 0)
    effective_wpm = base_wpm * speed
    return int(remaining_words / effective_wpm * 60)

def format_eta(seconds: int) -> str:
    if seconds < 5:
        return "almost done"
    if seconds < 60:
        return f"~{seconds}s left"
    return f"~{seconds // 60}m {seconds % 60}s left"

def estimate(total_words: int, spoken_words: int, speed: float, base_wpm: float = BASE_WPM) -> str:
    if total_words <= 0:
        return ""
    return format_eta(remaining_seconds(total_words, spoken_words, speed, base_wpm))
