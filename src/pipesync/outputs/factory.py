"""Pick a SyncOutput by name ("stdout"/"json" or "db")."""
from pipesync.outputs.base import SyncOutput

OUTPUT_NAMES = ("stdout", "json", "db")


def create_output(name: str, engine=None) -> SyncOutput:
    if name in ("stdout", "json"):
        from pipesync.outputs.stdout import StdoutOutput
        return StdoutOutput()
    if name == "db":
        from pipesync.db.engine import get_engine
        from pipesync.outputs.database import DatabaseOutput
        return DatabaseOutput(engine if engine is not None else get_engine())
    raise ValueError(f"Unknown output type: {name}. Use: {', '.join(OUTPUT_NAMES)}")
