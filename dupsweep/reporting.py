import csv
import logging
from pathlib import Path
from typing import Iterable, List

from .models import DuplicateGroup, ScanResult


def format_bytes(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024:
            return f"{value:.2f} {unit}" if unit != "B" else f"{int(value)} B"
        value /= 1024
    return f"{value:.2f} TB"


class ReportGenerator:
    HEADERS = [
        "Group ID",
        "Type",
        "Similarity",
        "Path",
        "Size",
        "Modified",
        "Quick Hash",
        "Full Hash",
    ]

    def write_group_report(self, groups: Iterable[DuplicateGroup], output_csv: Path) -> int:
        """
        Writes one row per group member. The first member of each group is
        the one kept when savings are computed.
        Returns the number of rows written.
        """
        output_csv = Path(output_csv)
        output_csv.parent.mkdir(parents=True, exist_ok=True)
        logging.info(f"Writing duplicate report -> {output_csv}")

        rows = 0
        with open(output_csv, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(self.HEADERS)

            for group in groups:
                for entry in group.files:
                    writer.writerow([
                        group.group_id,
                        group.type.value,
                        f"{group.similarity:.1f}",
                        str(entry.path),
                        entry.size,
                        entry.modified.isoformat() if entry.modified else "",
                        entry.quick_hash or "",
                        entry.full_hash or "",
                    ])
                    rows += 1

        logging.info(f"Report complete. {rows} rows written.")
        return rows

    def summarize(self, result: ScanResult) -> List[str]:
        lines = [
            f"State:            {result.state.value}",
            f"Files scanned:    {result.total_files_scanned}",
            f"Duration:         {result.duration:.2f}s",
            f"Duplicate groups: {len(result.groups)}",
            f"  exact:          {len(result.exact_matches())}",
            f"  similar images: {len(result.similar_images())}",
            f"  similar videos: {len(result.similar_videos())}",
            f"  similar audio:  {len(result.similar_audio())}",
            f"Duplicate files:  {result.total_duplicates}",
            f"Reclaimable:      {format_bytes(result.total_potential_savings)}",
        ]
        if result.error_message:
            lines.append(f"Error:            {result.error_message}")
        return lines
