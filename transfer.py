"""
Transfer engine. Reads a playlist from the source, creates it on the
destination, adds the tracks one by one and records the outcome.

Tracks are processed strictly in source order, one at a time: the destination
automator drives a single browser page. There is no resume. If the process
dies mid-loop, the tracks already added stay in the destination playlist and
nothing is written to the history.
"""

from errors import AutomationError, InvalidRequest, TransferAborted
from log_setup import get_logger
from models import TransferRecord

SOURCE_NAME = "Spotify"
DESTINATION_NAME = "YouTube Music"

TRACKS_READ_PERCENT = 30
ADDING_START_PERCENT = 40

log = get_logger("transfer")


def track_percent(done, total):
    """Displayed progress while adding tracks: 40% + the completed share of 60%."""
    if total <= 0:
        return 100
    return ADDING_START_PERCENT + (done / total) * (100 - ADDING_START_PERCENT)


class TransferEngine:
    def __init__(self, catalog, automator, history,
                 source_name=SOURCE_NAME, destination_name=DESTINATION_NAME):
        self.catalog = catalog
        self.automator = automator
        self.history = history
        self.source_name = source_name
        self.destination_name = destination_name
        self.unmatched = []

    def transfer(self, playlist, source_token, progress_cb=None):
        """Move one playlist and return the TransferRecord saved to the history.

        progress_cb(percent, matched, not_found, status) is called after the
        tracks are read and after every track. Source read failures propagate
        as-is; a failed playlist creation raises TransferAborted before any
        track is attempted."""

        def report(percent, matched, not_found, status):
            if progress_cb:
                progress_cb(percent, matched, not_found, status)

        self.unmatched = []
        log.info(f"Transferring '{playlist.name}' ({self.source_name} -> {self.destination_name})")

        # Step 1: read the whole source playlist
        tracks = self.catalog.list_tracks(playlist.id, source_token)
        total = len(tracks)
        log.info(f"Found {total} tracks in '{playlist.name}'")
        report(TRACKS_READ_PERCENT, 0, 0,
               f"Found {total} tracks. Creating {self.destination_name} playlist...")

        # Step 2: create the destination playlist; nothing to add to without it
        try:
            handle = self.automator.create_playlist(playlist.name)
        except (AutomationError, InvalidRequest) as e:
            log.error(f"Failed to create {self.destination_name} playlist '{playlist.name}': {e}")
            raise TransferAborted(f"Failed to create {self.destination_name} playlist", e) from e

        # Step 3: search and add each track, in order
        matched = 0
        not_found = 0
        for i, track in enumerate(tracks):
            result = self.automator.search_and_add(track, handle.name)
            if result.found:
                matched += 1
                status = "OK  "
            else:
                not_found += 1
                self.unmatched.append(track)
                status = f"MISS {result.state}"
            log.info(f"[{i + 1}/{total}] {status} | {track.artist} - {track.title}")
            report(track_percent(i + 1, total), matched, not_found,
                   f"Adding tracks... {i + 1}/{total}")

        # Step 4: record the outcome
        record = TransferRecord(
            source=self.source_name,
            destination=self.destination_name,
            playlist_name=playlist.name,
            tracks_matched=matched,
            tracks_total=total,
        )
        self.history.append(record)
        self._log_summary(record)
        return record

    def _log_summary(self, record):
        rate = round(record.tracks_matched / record.tracks_total * 100) if record.tracks_total else 0
        log.info(f"Transfer complete: {record.tracks_matched}/{record.tracks_total} matched ({rate}%), "
                 f"{record.tracks_not_found} not found")
        if not self.unmatched:
            return
        log.info(f"Could not match {len(self.unmatched)} tracks:")
        for track in self.unmatched:
            log.info(f"  - {track.title} by {track.artist}" if track.artist else f"  - {track.title}")
        log.info("Tip: these tracks may not be in the destination catalog, "
                 "or the top search result could not be added.")
