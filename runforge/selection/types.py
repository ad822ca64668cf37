class SelectionError(Exception):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)


class FilterError(SelectionError):
    def __init__(self, reason: str, names: list[str] | None = None):
        message = reason if not names else f"{reason}: " + ", ".join(names)
        super().__init__(message)
        self.names = names or []
