"""LaTeX run summaries built from the exported tables."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

from .detector import DetectorHandle
from .export import RunTables, particle_label


_LATEX_ESCAPES = {
    "&": r"\&",
    "%": r"\%",
    "$": r"\$",
    "#": r"\#",
    "_": r"\_",
    "{": r"\{",
    "}": r"\}",
}


def _escape(text: str) -> str:
    return "".join(_LATEX_ESCAPES.get(char, char) for char in str(text))


@dataclass
class RunReporter:
    detector: Optional[DetectorHandle] = None
    particle_labels: Dict[int, str] = field(default_factory=dict)
    compile_pdf: bool = False
    max_event_rows: int = 64

    def build_report(self, tables: RunTables, output_path: Path | str, *, total_edep: Optional[float] = None) -> Path:
        output = Path(output_path)
        output.parent.mkdir(parents=True, exist_ok=True)
        tex_source = self._render_latex(tables, total_edep)
        output.write_text(tex_source, encoding="utf-8")
        if self.compile_pdf:
            self._try_compile(output)
        return output

    def _render_latex(self, tables: RunTables, total_edep: Optional[float]) -> str:
        length_unit = _escape(tables.units.get("x0", "?"))
        energy_unit = _escape(tables.units.get("edep", "?"))
        events = tables.event
        tracks = tables.track
        n_orphans = int(tracks["pid"].isna().sum()) if len(tracks) else 0
        if total_edep is None:
            total_edep = float(events["edep"].sum()) if len(events) else 0.0
        body = [
            r"\documentclass[11pt]{article}",
            r"\usepackage{geometry}",
            r"\usepackage{longtable}",
            r"\usepackage{booktabs}",
            r"\geometry{margin=1in}",
            r"\title{Step Recording Run Report}",
            r"\begin{document}",
            r"\maketitle",
            r"\section*{Run Totals}",
            r"\begin{tabular}{ll}",
            r"\toprule",
            rf"Events & {len(events)}\\",
            rf"Tracks & {len(tracks)}\\",
            rf"Tracks alive at event end & {n_orphans}\\",
            rf"Recorded steps & {len(tables.step)}\\",
            rf"Optical detections & {int(events['n_detections'].sum()) if len(events) else 0}\\",
            rf"Total $E_{{dep}}$ [{energy_unit}] & {total_edep:.4g}\\",
            r"\bottomrule",
            r"\end{tabular}",
        ]
        if self.detector is not None and len(self.detector):
            body.extend([r"\section*{Detector Surfaces}", r"\begin{tabular}{lll}", r"\toprule"])
            body.append(r"Surface & Role & Sensitive\\")
            body.append(r"\midrule")
            for surface in self.detector:
                flag = "yes" if surface.sensitive else "no"
                body.append(rf"{_escape(surface.name)} & {_escape(surface.role)} & {flag}\\")
            body.extend([r"\bottomrule", r"\end{tabular}"])

        body.append(r"\section*{Event Catalogue}")
        body.append(r"\begin{longtable}{lllll}")
        body.append(r"\toprule")
        body.append(rf"Event ID & Tag & $E_{{dep}}$ [{energy_unit}] & $z_0$ [{length_unit}] & Detections\\")
        body.append(r"\midrule")
        for index, row in enumerate(events.itertuples(index=False)):
            if index >= self.max_event_rows:
                body.append(r"\midrule")
                body.append(r"\multicolumn{5}{c}{\textit{Catalogue truncated for brevity}}\\")
                break
            tag = "--" if pd.isna(row.tag) else str(row.tag)
            z0 = "--" if pd.isna(row.z0) else f"{row.z0:.3g}"
            body.append(rf"{row.event_id} & {tag} & {row.edep:.4g} & {z0} & {row.n_detections}\\")
        body.append(r"\bottomrule")
        body.append(r"\end{longtable}")

        body.append(r"\section*{Particle Composition}")
        body.append(r"\begin{tabular}{lr}")
        body.append(r"\toprule")
        body.append(r"Particle & Finalized tracks\\")
        body.append(r"\midrule")
        if len(tracks):
            counts = tracks["pid"].dropna().astype(int).value_counts().sort_index()
            for code, count in counts.items():
                body.append(rf"{_escape(particle_label(code, self.particle_labels))} & {count}\\")
        body.append(r"\bottomrule")
        body.append(r"\end{tabular}")
        body.append(r"\end{document}")
        return "\n".join(body)

    def _try_compile(self, tex_path: Path) -> None:
        try:
            subprocess.run(
                ["pdflatex", tex_path.name],
                cwd=tex_path.parent,
                check=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError:
            raise RuntimeError("pdflatex executable not found; disable compile_pdf or install TeX distribution")
        except subprocess.CalledProcessError as exc:
            raise RuntimeError(f"pdflatex failed: {exc.stderr.decode('utf-8', errors='ignore')}")


__all__ = ["RunReporter"]
