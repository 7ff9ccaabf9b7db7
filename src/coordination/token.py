"""Lock token - the file whose presence marks the lock as held."""

from pathlib import Path


class LockToken:
    """Plain-text token at a fixed path inside the replicated tree.
    
    Its content is exactly the holder's identity, with no trailing newline.
    """
    
    def __init__(self, workdir: Path, name: str = "lockfile"):
        self.workdir = Path(workdir)
        self.name = name
    
    @property
    def path(self) -> Path:
        return self.workdir / self.name
    
    def exists(self) -> bool:
        return self.path.is_file()
    
    def read(self) -> str | None:
        """Return the holder identity, or None when unlocked."""
        if not self.exists():
            return None
        return self.path.read_text(encoding="utf-8")
    
    def write(self, identity: str) -> None:
        self.path.write_text(identity, encoding="utf-8")
    
    def discard(self) -> None:
        self.path.unlink(missing_ok=True)
