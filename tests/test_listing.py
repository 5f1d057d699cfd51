"""
Directory scanning and listing rendering.
"""
import os
import random
import re
import tempfile
import time
import unittest
from pathlib import Path

from dirserve import listing
from dirserve.listing import DirectoryEntry, DirectoryListing, EntryKind

HAS_SYMLINKS = hasattr(os, "symlink") and os.name == "posix"


def make_entry(name, kind=EntryKind.FILE, size=1):
	if kind is EntryKind.DIRECTORY:
		size = None
	return DirectoryEntry(name, kind, 0.0, size)


def visible_text(fragment):
	return re.sub(r"<[^>]+>", "", fragment)


class SortOrderTests(unittest.TestCase):
	def test_directories_then_hidden_then_case_sensitive_name(self):
		entries = [
			make_entry("b.txt"),
			make_entry(".hidden"),
			make_entry("sub/", EntryKind.DIRECTORY),
			make_entry("a.txt"),
			make_entry(".git/", EntryKind.DIRECTORY),
			make_entry("A.txt"),
		]
		names = [e.name for e in listing.sort_entries(entries)]
		self.assertEqual(names,
			[".git/", "sub/", ".hidden", "A.txt", "a.txt", "b.txt"])

	def test_sorting_is_idempotent_and_independent_of_input_order(self):
		entries = [make_entry(n) for n in ("z", ".a", "m", "B", "b", ".Z")]
		entries += [make_entry(n, EntryKind.DIRECTORY)
			for n in ("d/", ".d/", "D/")]
		expected = listing.sort_entries(entries)
		self.assertEqual(listing.sort_entries(expected), expected)

		rng = random.Random(7)
		for _ in range(20):
			shuffled = entries[:]
			rng.shuffle(shuffled)
			self.assertEqual(listing.sort_entries(shuffled), expected)

	def test_hidden_file_stays_behind_directories(self):
		entries = [make_entry(".profile"), make_entry("bin/", EntryKind.DIRECTORY)]
		names = [e.name for e in listing.sort_entries(entries)]
		self.assertEqual(names, ["bin/", ".profile"])


class RenderEntryTests(unittest.TestCase):
	def test_long_name_is_cut_to_47_characters_plus_marker(self):
		name = "x" * 51
		fragment = listing.render_entry(name, 0.0, 1)
		self.assertIn(">" + "x" * 47 + "..></a>", fragment)
		self.assertIn(f'href="{name}"', fragment)

	def test_name_of_exactly_50_characters_is_untouched(self):
		name = "y" * 50
		fragment = listing.render_entry(name, 0.0, 1)
		self.assertIn(">" + name + "</a>", fragment)
		self.assertNotIn("..>", fragment)

	def test_columns_are_fixed_width(self):
		modified = time.mktime((2021, 3, 4, 5, 6, 0, 0, 0, -1))
		text = visible_text(listing.render_entry("notes.txt", modified, 10))
		self.assertEqual(len(text), 50 + 1 + 17 + 1 + 19)
		self.assertEqual(text[:50].rstrip(), "notes.txt")
		self.assertEqual(text[51:68], "04-Mar-2021 05:06")
		self.assertEqual(text[69:], " " * 17 + "10")

	def test_directory_size_renders_as_dash(self):
		text = visible_text(listing.render_entry("sub/", 0.0, None))
		self.assertTrue(text.endswith(" " * 18 + "-"))

	def test_names_are_escaped_and_quoted(self):
		fragment = listing.render_entry("a<b c", 0.0, 1)
		self.assertIn('href="a%3Cb%20c"', fragment)
		self.assertIn(">a&lt;b c</a>", fragment)
		# padding follows the text the browser shows, not the entity
		rest = fragment.split("</a>", 1)[1]
		self.assertEqual(len(rest) - len(rest.lstrip(" ")), 50 - 5 + 1)

	def test_fragment_is_computed_once_from_fields(self):
		entry = make_entry("file.bin", size=42)
		self.assertEqual(entry.fragment,
			listing.render_entry("file.bin", 0.0, 42))

	def test_format_mtime_uses_english_month_names(self):
		ts = time.mktime((1999, 12, 31, 23, 59, 0, 0, 0, -1))
		self.assertEqual(listing.format_mtime(ts), "31-Dec-1999 23:59")


class ScanDirectoryTests(unittest.TestCase):
	def setUp(self):
		self._tmp = tempfile.TemporaryDirectory()
		self.root = Path(self._tmp.name)
		self.addCleanup(self._tmp.cleanup)

	def test_lists_children_in_display_order(self):
		(self.root / "b.txt").write_bytes(b"0123456789")
		(self.root / ".hidden").write_bytes(b"")
		(self.root / "sub").mkdir()

		result = listing.build_listing(str(self.root), "/")
		self.assertEqual([e.name for e in result.entries],
			["sub/", ".hidden", "b.txt"])
		sizes = {e.name: e.size for e in result.entries}
		self.assertEqual(sizes["b.txt"], 10)
		self.assertIsNone(sizes["sub/"])
		self.assertTrue(result.entries[0].is_dir)

	def test_index_file_suppresses_listing(self):
		(self.root / "index.html").write_text("<p>hi</p>")
		(self.root / "other.txt").write_text("x")
		self.assertIsNone(listing.scan_directory(str(self.root)))
		self.assertIsNone(listing.build_listing(str(self.root), "/"))

	def test_empty_directory_renders_only_parent_link(self):
		result = listing.build_listing(str(self.root), "/empty")
		self.assertEqual(result.entries, ())
		page = result.render()
		self.assertIn('<pre><a href="../">../</a>\n</pre>', page)

	def test_missing_directory_raises(self):
		with self.assertRaises(FileNotFoundError):
			listing.scan_directory(str(self.root / "nope"))

	@unittest.skipUnless(HAS_SYMLINKS, "needs symlinks")
	def test_symlink_reports_target_metadata(self):
		target = self.root / "target.bin"
		target.write_bytes(b"x" * 123)
		os.utime(target, (1_000_000_000, 1_000_000_000))
		os.symlink("target.bin", self.root / "link.bin")

		entries = {e.name: e for e in listing.scan_directory(str(self.root))}
		link = entries["link.bin"]
		self.assertEqual(link.size, 123)
		self.assertEqual(link.modified, 1_000_000_000)
		self.assertIs(link.kind, EntryKind.FILE)

	@unittest.skipUnless(HAS_SYMLINKS, "needs symlinks")
	def test_symlink_to_directory_is_a_directory(self):
		(self.root / "real").mkdir()
		os.symlink(self.root / "real", self.root / "alias")
		names = [e.name for e in listing.build_listing(str(self.root), "/").entries]
		self.assertEqual(names, ["alias/", "real/"])

	@unittest.skipUnless(HAS_SYMLINKS, "needs symlinks")
	def test_symlink_chain_resolves_to_final_target(self):
		(self.root / "final").mkdir()
		os.symlink("final", self.root / "hop1")
		os.symlink("hop1", self.root / "hop2")
		entries = {e.name: e for e in listing.scan_directory(str(self.root))}
		self.assertIn("hop2/", entries)
		self.assertTrue(entries["hop2/"].is_dir)

	@unittest.skipUnless(HAS_SYMLINKS, "needs symlinks")
	def test_dangling_symlink_is_skipped(self):
		(self.root / "kept.txt").write_text("x")
		os.symlink("missing.txt", self.root / "dangling.txt")
		names = [e.name for e in listing.scan_directory(str(self.root))]
		self.assertEqual(names, ["kept.txt"])

	@unittest.skipUnless(HAS_SYMLINKS, "needs symlinks")
	def test_symlink_loop_fails_the_listing(self):
		os.symlink("loop", self.root / "loop")
		with self.assertRaises(OSError):
			listing.scan_directory(str(self.root))


class PageTests(unittest.TestCase):
	def test_title_and_heading_echo_the_path(self):
		page = DirectoryListing("/a/b/", ()).render()
		self.assertIn("<title>Index of /a/b/</title>", page)
		self.assertIn("<h1>Index of /a/b/</h1>", page)

	def test_path_is_escaped(self):
		page = DirectoryListing("/<x>/", ()).render()
		self.assertIn("Index of /&lt;x&gt;/", page)
		self.assertNotIn("<x>", page)

	def test_entries_join_with_newlines_after_parent_link(self):
		entries = (make_entry("d/", EntryKind.DIRECTORY), make_entry("f"))
		page = DirectoryListing("/", entries).render()
		body = page.split("<pre>", 1)[1].split("</pre>", 1)[0]
		lines = body.split("\n")
		self.assertEqual(lines[0], '<a href="../">../</a>')
		self.assertEqual(lines[1:], [e.fragment for e in entries])

	def test_build_listing_appends_trailing_slash(self):
		with tempfile.TemporaryDirectory() as tmp:
			result = listing.build_listing(tmp, "/docs")
		self.assertEqual(result.path, "/docs/")


if __name__ == "__main__":
	unittest.main()
