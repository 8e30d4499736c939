from dataclasses import dataclass
from pathlib import Path

_DATA_DIR = Path(__file__).resolve().parent.parent / "data"


@dataclass(frozen=True)
class IngestionConfig:
    """
    Configuration for the ingestion pipeline.
    """

    raw_data_dir: Path = _DATA_DIR / "raw"
    raw_filename: str = "merchants.json"
    processed_data_dir: Path = _DATA_DIR / "processed"
    processed_filename: str = "restaurants.json"

    @property
    def raw_path(self) -> Path:
        return self.raw_data_dir / self.raw_filename

    @property
    def processed_path(self) -> Path:
        return self.processed_data_dir / self.processed_filename


DEFAULT_INGESTION_CONFIG = IngestionConfig()
