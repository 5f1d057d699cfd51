"""
Directory scanning and autoindex page rendering.

Listings look like the classic web server ones: a fixed-width column of
linked names, then modification time, then size.
"""
import enum
import html
import os
import stat
import time
import urllib.parse
from dataclasses import dataclass, field
from typing import Optional

INDEX_FILE = "index.html"

NAME_WIDTH = 50
NAME_KEEP = 47
NAME_MARKER = "..>"
SIZE_WIDTH = 19
UNKNOWN_SIZE = "-"

# %b follows the locale, listings should not
MONTHS = (
	"Jan", "Feb", "Mar", "Apr", "May", "Jun",
	"Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

PAGE = """<html>
<head><title>Index of {path}</title></head>
<body bgcolor="white">
<h1>Index of {path}</h1><hr><pre><a href="../">../</a>
{body}</pre><hr></body>
</html>
"""


class EntryKind(enum.Enum):
	FILE = "file"
	DIRECTORY = "directory"


def format_mtime(timestamp):
	"""Local time as DD-Mon-YYYY HH:MM."""
	t = time.localtime(timestamp)
	return (f"{t.tm_mday:02d}-{MONTHS[t.tm_mon - 1]}-{t.tm_year} "
		f"{t.tm_hour:02d}:{t.tm_min:02d}")


def render_entry(name, modified, size):
	"""
	Render one listing line.

	The label is cut to 47 characters plus a "..>" marker when the name is
	longer than 50. Padding is counted on the unescaped label so the columns
	line up once the browser renders entities.
	"""
	if len(name) > NAME_WIDTH:
		label = html.escape(name[:NAME_KEEP]) + NAME_MARKER
		padding = ""
	else:
		label = html.escape(name)
		padding = " " * (NAME_WIDTH - len(name))
	size_text = UNKNOWN_SIZE if size is None else str(size)
	href = urllib.parse.quote(name, errors="surrogateescape")
	return (
		f'<a href="{href}">{label}</a>'
		f"{padding} {format_mtime(modified)} {size_text:>{SIZE_WIDTH}}"
	)


@dataclass(frozen=True)
class DirectoryEntry:
	name: str
	kind: EntryKind
	modified: float
	size: Optional[int]
	fragment: str = field(init=False, repr=False, compare=False)

	def __post_init__(self):
		object.__setattr__(self, "fragment",
			render_entry(self.name, self.modified, self.size))

	@property
	def is_dir(self):
		return self.kind is EntryKind.DIRECTORY

	@property
	def is_hidden(self):
		return self.name.startswith(".")


def sort_key(entry):
	"""Directories first, then hidden entries, then by name."""
	return (not entry.is_dir, not entry.is_hidden, entry.name)


def sort_entries(entries):
	return sorted(entries, key=sort_key)


def resolve_entry(dir_entry):
	"""
	Stat a directory entry, following symlinks all the way to the target.

	Returns (kind, stat_result), or None when the entry is a link whose
	target does not exist. Any other failure is raised.
	"""
	try:
		st = dir_entry.stat(follow_symlinks=True)
	except FileNotFoundError:
		if dir_entry.is_symlink():
			return None
		raise
	if stat.S_ISDIR(st.st_mode):
		return EntryKind.DIRECTORY, st
	return EntryKind.FILE, st


def scan_directory(path):
	"""
	List the immediate children of path.

	Returns None if the directory holds an index.html, in which case no
	listing should be rendered at all.
	"""
	with os.scandir(path) as it:
		children = list(it)

	if any(child.name == INDEX_FILE for child in children):
		return None

	entries = []
	for child in children:
		resolved = resolve_entry(child)
		if resolved is None:
			continue
		kind, st = resolved
		if kind is EntryKind.DIRECTORY:
			entries.append(DirectoryEntry(child.name + "/", kind,
				st.st_mtime, None))
		else:
			entries.append(DirectoryEntry(child.name, kind,
				st.st_mtime, st.st_size))
	return entries


@dataclass(frozen=True)
class DirectoryListing:
	path: str
	entries: tuple

	def render(self):
		body = "\n".join(entry.fragment for entry in self.entries)
		return PAGE.format(path=html.escape(self.path), body=body)


def build_listing(fs_path, url_path):
	"""Scan fs_path and order it for display under url_path."""
	entries = scan_directory(fs_path)
	if entries is None:
		return None
	if not url_path.endswith("/"):
		url_path += "/"
	return DirectoryListing(url_path, tuple(sort_entries(entries)))
