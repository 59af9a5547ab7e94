"""Translation manifest (<sim>.xml) telling the website which locales exist."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List
from xml.sax.saxutils import quoteattr

from ..errors import StepError
from ..model import ENGLISH_LOCALE
from ..pipeline import BuildContext

logger = logging.getLogger(__name__)

STEP = "write translations manifest"
MANIFEST_MODE = 0o664


@dataclass(frozen=True)
class StringFile:
    locale: str
    path: Path


def locale_of(filename: str) -> str:
    """`area-builder-strings_zh_CN.json` -> `zh_CN`"""
    start = filename.index("_") + 1
    end = filename.index(".")
    return filename[start:end]


def title_key(sim_name: str, package_json: Dict[str, Any]) -> str:
    """
    The strings key holding the simulation title: the part after the slash of
    `phet.simTitleStringKey` when present, otherwise `<sim>.name`.
    """
    declared = (package_json.get("phet") or {}).get("simTitleStringKey")
    if isinstance(declared, str) and "/" in declared:
        return declared.split("/", 1)[1]
    return f"{sim_name}.name"


def find_string_files(sim_dir: Path, translations_dir: Path, sim_name: str) -> List[StringFile]:
    """English strings first, then every translated strings file in sorted order."""
    files = [StringFile(ENGLISH_LOCALE, sim_dir / f"{sim_name}-strings_{ENGLISH_LOCALE}.json")]
    if not translations_dir.is_dir():
        logger.warning("no directory for %s exists in %s", sim_name, translations_dir.parent)
        return files

    seen = {ENGLISH_LOCALE}
    for path in sorted(translations_dir.iterdir()):
        if not path.is_file() or "_" not in path.name or "." not in path.name:
            continue
        try:
            locale = locale_of(path.name)
        except ValueError:
            continue
        if not locale or locale in seen:
            continue
        seen.add(locale)
        files.append(StringFile(locale, path))
    return files


def _read_json(path: Path) -> Dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))


def _cdata(text: str) -> str:
    return "<![CDATA[" + text.replace("]]>", "]]]]><![CDATA[>") + "]]>"


def render_manifest(sim_name: str, titles: Dict[str, str]) -> str:
    """Render the manifest for `titles` (locale -> title), preserving order."""
    name = quoteattr(sim_name)
    parts = [
        '<?xml version="1.0" encoding="utf-8" ?>\n',
        f"<project name={name}>\n",
        "<simulations>\n",
    ]
    for locale, title in titles.items():
        parts.append(
            f"<simulation name={name} locale={quoteattr(locale)}>\n"
            f"<title>{_cdata(title)}</title>\n"
            "</simulation>\n"
        )
    parts.append("</simulations>\n</project>")
    return "".join(parts)


def collect_titles(
    sim_name: str,
    sim_dir: Path,
    translations_dir: Path,
    version_dir: Path,
) -> tuple[str, Dict[str, str]]:
    """
    Return the English title and a locale -> title map for every locale whose
    built HTML exists in `version_dir`.
    """
    package_path = sim_dir / "package.json"
    if not package_path.is_file():
        raise StepError(step=STEP, message="package.json not found when trying to create translations XML file")
    key = title_key(sim_name, _read_json(package_path))

    english_path = sim_dir / f"{sim_name}-strings_{ENGLISH_LOCALE}.json"
    if not english_path.is_file():
        raise StepError(step=STEP, message=f"English strings file not found: {english_path}")
    english = _read_json(english_path)
    if key not in english:
        raise StepError(step=STEP, message=f"title key {key!r} missing from {english_path.name}")
    english_title = english[key]["value"]

    titles: Dict[str, str] = {}
    for sf in find_string_files(sim_dir, translations_dir, sim_name):
        html = version_dir / f"{sim_name}_{sf.locale}.html"
        if not html.exists():
            continue
        strings = english if sf.locale == ENGLISH_LOCALE else _read_json(sf.path)
        entry = strings.get(key)
        if isinstance(entry, dict) and entry.get("value"):
            titles[sf.locale] = entry["value"]
        else:
            logger.warning("Sim name not found in translation for %s. Defaulting to English name.", html)
            titles[sf.locale] = english_title
    return english_title, titles


def write_translations_manifest(ctx: BuildContext) -> None:
    sim = ctx.job.sim_name
    english_title, titles = collect_titles(
        sim,
        ctx.sim_dir,
        ctx.repo_dir(ctx.settings.translations_repo) / sim,
        ctx.version_dir,
    )
    # the catalog step reads the title from here
    ctx.sim_title = english_title

    xml = render_manifest(sim, titles)
    path = ctx.version_dir / f"{sim}.xml"
    path.write_text(xml, encoding="utf-8")
    os.chmod(path, MANIFEST_MODE)
    logger.info("wrote XML file %s:\n%s", path, xml)
