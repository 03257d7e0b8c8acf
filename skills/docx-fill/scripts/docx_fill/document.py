#!/usr/bin/env python3
"""
ABOUTME: Docx document store: loads modifiable parts, runs placeholder passes
ABOUTME: and re-zips the archive copying every other entry unchanged
"""

import copy
import os
import tempfile
import zipfile
from io import BytesIO
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, List, Optional, Union

from lxml import etree

from .common import (
    DOCUMENT_XML,
    FOOTER_PATH_PATTERN,
    HEADER_PATH_PATTERN,
    MEDIA_PATH_PREFIX,
    SYNTAX_EXPRESSION,
    SYNTAX_SIMPLE,
    is_modifiable_part,
    is_xml_part,
)
from .errors import ArchiveError, DocumentIOError, UnregisteredPartError
from .evaluator import Evaluator, JinjaEvaluator, MapEvaluator
from .observer import NullObserver, Observer
from .placeholders import Placeholder, parse_placeholders
from .replacer import ReplacementEngine, ReplacementResult
from .run_parser import Run, RunParser


PathLike = Union[str, os.PathLike]

# Parser used to check modified parts before writing
_VERIFY_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=True)


class DocxDocument:
    """
    An open docx template.

    Only word/document.xml, word/header*.xml, word/footer*.xml and
    word/media/* are loaded; every other entry is copied verbatim on write.
    The instance holds the source archive open until close(). Using several
    instances over the same file at once is the caller's responsibility.
    """

    def __init__(self, archive: zipfile.ZipFile, path: Optional[PathLike] = None,
                 observer: Optional[Observer] = None):
        self.path = Path(path) if path is not None else None
        self.observer = observer or NullObserver()
        self.evaluator = JinjaEvaluator()
        self.template_data: Any = None

        self._archive = archive
        # Modifiable parts: name -> current bytes, in archive order
        self.files: Dict[str, bytes] = {}
        self.header_files: List[str] = []
        self.footer_files: List[str] = []
        self.media_files: List[str] = []
        self._modified: set = set()
        self._run_cache: Dict[str, tuple] = {}

        self._parse_archive()
        if DOCUMENT_XML not in self.files:
            raise ArchiveError(f"invalid docx archive, {DOCUMENT_XML} is missing")

        # Malformed parts are rejected up front
        for name in self.xml_parts:
            self.runs(name)

    # ============================================================
    # Opening / closing
    # ============================================================

    @classmethod
    def open(cls, path: PathLike, observer: Optional[Observer] = None) -> 'DocxDocument':
        """
        Open a docx file.

        Raises:
            DocumentIOError: If the file cannot be read
            ArchiveError: If it is not a valid docx archive
            PartParseError: If a modifiable XML part is malformed
        """
        try:
            archive = zipfile.ZipFile(path, 'r')
        except zipfile.BadZipFile as e:
            raise ArchiveError(f"unable to open zip reader: {e}") from e
        except OSError as e:
            raise DocumentIOError(f"unable to open .docx file: {e}") from e
        return cls._create(archive, path, observer)

    @classmethod
    def open_bytes(cls, data: bytes, observer: Optional[Observer] = None) -> 'DocxDocument':
        """Open a docx held in memory; behaves like open()"""
        try:
            archive = zipfile.ZipFile(BytesIO(data), 'r')
        except zipfile.BadZipFile as e:
            raise ArchiveError(f"unable to open zip reader: {e}") from e
        return cls._create(archive, None, observer)

    @classmethod
    def _create(cls, archive: zipfile.ZipFile, path, observer) -> 'DocxDocument':
        try:
            return cls(archive, path, observer)
        except BaseException:
            archive.close()
            raise

    def close(self):
        self._archive.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _parse_archive(self):
        """Read the modifiable parts into memory, keeping archive order"""
        for info in self._archive.infolist():
            name = info.filename
            if info.is_dir() or not is_modifiable_part(name) or name in self.files:
                continue
            try:
                self.files[name] = self._archive.read(info)
            except (zipfile.BadZipFile, zipfile.LargeZipFile, NotImplementedError) as e:
                raise ArchiveError(f"unable to read {name}: {e}") from e
            if HEADER_PATH_PATTERN.match(name):
                self.header_files.append(name)
            elif FOOTER_PATH_PATTERN.match(name):
                self.footer_files.append(name)
            elif name.startswith(MEDIA_PATH_PREFIX):
                self.media_files.append(name)

    # ============================================================
    # Part access
    # ============================================================

    @property
    def part_names(self) -> List[str]:
        return list(self.files)

    @property
    def xml_parts(self) -> List[str]:
        """Modifiable parts that carry document text"""
        return [
            name for name in self.files
            if is_xml_part(name) and not name.startswith(MEDIA_PATH_PREFIX)
        ]

    def get_file(self, name: str) -> Optional[bytes]:
        return self.files.get(name)

    def set_file(self, name: str, data: bytes):
        """
        Overwrite a tracked part (XML or media).

        Raises:
            UnregisteredPartError: If name is not a part this document tracks
        """
        if name not in self.files:
            raise UnregisteredPartError(f"unregistered file {name}")
        self.files[name] = bytes(data)
        self._modified.add(name)

    def runs(self, name: str) -> List[Run]:
        """Runs of an XML part, parsed from its current bytes"""
        data = self.files.get(name)
        if data is None:
            raise UnregisteredPartError(f"unregistered file {name}")
        cached = self._run_cache.get(name)
        if cached is not None and cached[0] is data:
            return cached[1]
        runs = RunParser(data, name).execute()
        self._run_cache[name] = (data, runs)
        return runs

    # ============================================================
    # Placeholder processing
    # ============================================================

    def locate(self, syntax: str = SYNTAX_EXPRESSION) -> Dict[str, List[Placeholder]]:
        """Locate placeholders of one syntax in every XML part"""
        return {
            name: parse_placeholders(self.runs(name), self.files[name], syntax, name)
            for name in self.xml_parts
        }

    def _process(self, syntax: str, evaluator: Evaluator, context: Any) -> List[ReplacementResult]:
        # Locate everything first so a malformed part aborts before any change
        located = self.locate(syntax)
        engine = ReplacementEngine(evaluator, self.observer)
        results: List[ReplacementResult] = []
        for name, placeholders in located.items():
            self.observer.on_part(name, len(placeholders))
            if not placeholders:
                continue
            new_data, part_results = engine.apply(self.files[name], placeholders, context)
            if new_data != self.files[name]:
                self.set_file(name, new_data)
            results.extend(part_results)
        return results

    def set_template_data(self, data: Any):
        self.template_data = data

    def add_template_funcs(self, funcs: Dict[str, Callable]):
        self.evaluator.add_funcs(funcs)

    def execute_template(self, data: Any = None,
                         funcs: Optional[Dict[str, Callable]] = None) -> List[ReplacementResult]:
        """
        Substitute every {{expression}} placeholder.

        Args:
            data: Template data (mapping or object); defaults to set_template_data()
            funcs: Extra functions for the expression language

        Returns:
            One ReplacementResult per placeholder, in document order
        """
        if funcs:
            self.add_template_funcs(funcs)
        if data is not None:
            self.template_data = data
        return self._process(SYNTAX_EXPRESSION, self.evaluator, self.template_data)

    def replace_all(self, replace_map: Dict[str, Any]) -> List[ReplacementResult]:
        """Substitute every {key} placeholder found in replace_map; misses stay literal"""
        return self._process(SYNTAX_SIMPLE, MapEvaluator(), replace_map)

    def extract_placeholders(self, syntax: str = SYNTAX_SIMPLE) -> List[str]:
        """Keys (or expressions) of all placeholders, without duplicates"""
        keys: Dict[str, None] = {}
        for placeholders in self.locate(syntax).values():
            for placeholder in placeholders:
                keys.setdefault(placeholder.key, None)
        return list(keys)

    def validate_placeholders(self, replace_map: Dict[str, Any]) -> List[str]:
        """Simple placeholder keys in the document that replace_map does not provide"""
        return [key for key in self.extract_placeholders(SYNTAX_SIMPLE) if key not in replace_map]

    # ============================================================
    # Writing
    # ============================================================

    def verify(self):
        """
        Check that every modified XML part is still well-formed.

        Raises:
            ArchiveError: If a modified part does not parse
        """
        for name in self.xml_parts:
            if name not in self._modified:
                continue
            try:
                etree.fromstring(self.files[name], _VERIFY_PARSER)
            except etree.XMLSyntaxError as e:
                raise ArchiveError(f"{name} is no longer well-formed: {e}") from e

    def write(self, stream: BinaryIO, verify: bool = False):
        """
        Write the docx archive to a binary stream.

        Entries are written in the original order. Tracked parts get their
        current bytes; every other entry is copied from the source archive.
        ZipInfo objects are copied since writestr() rewrites their offsets.
        """
        if verify:
            self.verify()
        with zipfile.ZipFile(stream, 'w') as output_zip:
            for info in self._archive.infolist():
                if info.filename in self.files:
                    output_zip.writestr(copy.copy(info), self.files[info.filename])
                    continue
                try:
                    original = self._archive.read(info)
                except zipfile.BadZipFile as e:
                    raise ArchiveError(f"unable to copy {info.filename}: {e}") from e
                output_zip.writestr(copy.copy(info), original)

    def to_bytes(self, verify: bool = True) -> bytes:
        buffer = BytesIO()
        self.write(buffer, verify=verify)
        return buffer.getvalue()

    def write_to_file(self, path: PathLike, verify: bool = True):
        """
        Write the document to a new file.

        The target cannot be the file this document was opened from. Missing
        parent directories are created. The archive is assembled in a
        temporary file next to the target, so a failure leaves no output.

        Raises:
            DocumentIOError: On self-overwrite or any file system error
            ArchiveError: If verify is set and a modified part is malformed
        """
        target = Path(path)
        if self.path is not None and target.resolve() == self.path.resolve():
            raise DocumentIOError("write_to_file cannot write into the original docx archive while it's open")

        if verify:
            self.verify()
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix='.' + target.name, suffix='.tmp', dir=target.parent)
        except OSError as e:
            raise DocumentIOError(f"unable to prepare output {target}: {e}") from e
        try:
            with os.fdopen(fd, 'wb') as tmp_file:
                self.write(tmp_file)
            os.replace(tmp_name, target)
        except OSError as e:
            _remove_quietly(tmp_name)
            raise DocumentIOError(f"unable to write output {target}: {e}") from e
        except Exception:
            _remove_quietly(tmp_name)
            raise


def _remove_quietly(name: str):
    try:
        os.remove(name)
    except FileNotFoundError:
        pass


# ============================================================
# One-shot helpers
# ============================================================

def generate_output_path(template_path: PathLike) -> Path:
    """report.docx -> report_output.docx, in the same directory"""
    template = Path(template_path)
    return template.with_stem(template.stem + '_output')


def complete_template(template_path: PathLike, data: Any, output_path: Optional[PathLike] = None,
                      funcs: Optional[Dict[str, Callable]] = None,
                      observer: Optional[Observer] = None) -> Path:
    """
    Open a template, substitute {{expression}} placeholders and write the result.

    Without output_path the result is written next to the template with an
    "_output" suffix.

    Returns:
        Path of the written file
    """
    output = Path(output_path) if output_path else generate_output_path(template_path)
    with DocxDocument.open(template_path, observer) as doc:
        doc.execute_template(data, funcs=funcs)
        doc.write_to_file(output)
    return output


def complete_template_to_bytes(template_path: PathLike, data: Any,
                               funcs: Optional[Dict[str, Callable]] = None,
                               observer: Optional[Observer] = None) -> bytes:
    with DocxDocument.open(template_path, observer) as doc:
        doc.execute_template(data, funcs=funcs)
        return doc.to_bytes()


def complete_template_from_bytes(template: bytes, data: Any,
                                 funcs: Optional[Dict[str, Callable]] = None,
                                 observer: Optional[Observer] = None) -> bytes:
    """Render a template held in memory, no file system involved"""
    with DocxDocument.open_bytes(template, observer) as doc:
        doc.execute_template(data, funcs=funcs)
        return doc.to_bytes()


def complete_replace_all(template_path: PathLike, replace_map: Dict[str, Any],
                         output_path: Optional[PathLike] = None,
                         observer: Optional[Observer] = None) -> Path:
    """Like complete_template() for simple {key} placeholders"""
    output = Path(output_path) if output_path else generate_output_path(template_path)
    with DocxDocument.open(template_path, observer) as doc:
        doc.replace_all(replace_map)
        doc.write_to_file(output)
    return output


def complete_replace_all_to_bytes(template_path: PathLike, replace_map: Dict[str, Any],
                                  observer: Optional[Observer] = None) -> bytes:
    with DocxDocument.open(template_path, observer) as doc:
        doc.replace_all(replace_map)
        return doc.to_bytes()


def complete_replace_all_from_bytes(template: bytes, replace_map: Dict[str, Any],
                                    observer: Optional[Observer] = None) -> bytes:
    with DocxDocument.open_bytes(template, observer) as doc:
        doc.replace_all(replace_map)
        return doc.to_bytes()
