"""The bytes-read counter, including polling it from another thread."""

import io
import threading

from multipartreader import MultipartReader


def build_reader(chunk_size=64):
    reader = MultipartReader(chunk_size=chunk_size)
    reader.write_fields({"a": "1", "b": "2"})
    reader.add_form_reader(io.BytesIO(b"x" * 10_000), "file", "big.bin", length=10_000)
    return reader


def test_count_is_zero_before_reading():
    reader = build_reader()
    assert reader.count() == 0

    reader.read(0)
    assert reader.count() == 0


def test_count_matches_bytes_produced():
    reader = build_reader()
    first = reader.read(10)
    assert reader.count() == len(first)

    rest = reader.read()
    assert reader.count() == len(first) + len(rest) == reader.length

    reader.read(100)
    assert reader.count() == reader.length


def test_count_can_be_polled_while_reading():
    reader = build_reader(chunk_size=7)
    seen = []
    stop = threading.Event()

    def watch():
        while not stop.wait(0.0001):
            seen.append(reader.count())
        seen.append(reader.count())

    watcher = threading.Thread(target=watch)
    watcher.start()
    total = sum(len(chunk) for chunk in reader)
    stop.set()
    watcher.join()

    assert seen == sorted(seen)
    assert seen[-1] == total == reader.length
