"""
Sort Session - Controller for one interactive sort

Owns the catalog selection and the active RunState and wires the
components together:

- start(): filter the catalog, seed the scheduler, preload images
- pick() / undo(): feed outcomes through the ledger and scheduler
- save() / load(): encode progress to a save string and rebuild it by
  replaying the recorded choices
- results() and the export helpers once the run has finished

Display is left to callers, which receive (label, percent) progress
updates and blocking notices through callbacks.
"""

import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

from catalog import CatalogRegistry, CatalogVersion, Item
from filter_engine import FilterSelection, InsufficientItems, build_working_set
from image_preloader import ImagePreloader, ProgressCallback
from pair_scheduler import ComparisonScheduler
from progress_store import ProgressStore
from ranking_resolver import (
    RankedEntry, completion_summary, export_csv, export_json, export_path,
    format_text_list, resolve_rankings
)
from run_state import Outcome, RunState
from score_ledger import ScoreLedger
from state_codec import DecodeError, SaveCodec, SaveData, detect_clock_skew, resolve_version

logger = logging.getLogger(__name__)

NoticeCallback = Callable[[str], None]


def current_time_ms() -> int:
    return int(time.time() * 1000)


class SortSession:
    """
    A single sorter: at most one run is active at a time.

    Args:
        registry: All catalog versions
        store: Where save slots are kept (None disables saving to slots)
        sorter_url: Host and path that keys save slots and share links
        progress: Receives (label, percent) updates
        notify: Receives messages the user must acknowledge
        clock: Returns the current time in epoch milliseconds
    """

    def __init__(
        self,
        registry: CatalogRegistry,
        store: Optional[ProgressStore] = None,
        sorter_url: str = 'localhost/sorter',
        url_scheme: str = 'http',
        codec: Optional[SaveCodec] = None,
        preloader: Optional[ImagePreloader] = None,
        progress: Optional[ProgressCallback] = None,
        notify: Optional[NoticeCallback] = None,
        clock: Callable[[], int] = current_time_ms,
        autosave: bool = True,
        mode: str = 'ERP',
        export_dir: str = 'exports',
    ):
        self.registry = registry
        self.store = store
        self.sorter_url = sorter_url
        self.url_scheme = url_scheme
        self.codec = codec or SaveCodec()
        self.preloader = preloader
        self.progress = progress
        self.notify = notify
        self.clock = clock
        self.autosave = autosave
        self.mode = mode
        self.export_dir = export_dir

        self.catalog: CatalogVersion = registry.latest()
        self.state: Optional[RunState] = None
        self.scheduler: Optional[ComparisonScheduler] = None
        self.ledger: Optional[ScoreLedger] = None
        self.image_refs: Dict[int, str] = {}
        self._pending: Optional[SaveData] = None

    @classmethod
    def from_config(cls, config, progress=None, notify=None) -> "SortSession":
        """Build a session from a ConfigManager."""
        registry = CatalogRegistry.load_directory(config.get('catalog_dir'))
        preloader = None
        if config.get('preload_images'):
            preloader = ImagePreloader(
                image_root=config.get('image_root'),
                max_size=config.get('max_image_size'),
                max_workers=config.get('preload_workers'),
            )
        return cls(
            registry,
            store=ProgressStore(config.get('store_file')),
            sorter_url=config.get('sorter_url'),
            url_scheme=config.get('url_scheme'),
            codec=SaveCodec(config.get('save_format_version')),
            preloader=preloader,
            progress=progress,
            notify=notify,
            autosave=config.get('autosave'),
            mode=config.get('mode'),
            export_dir=config.get('export_dir'),
        )

    # -- state -----------------------------------------------------------

    @property
    def is_started(self) -> bool:
        return self.state is not None

    @property
    def is_finished(self) -> bool:
        return self.state is not None and self.state.is_finished

    @property
    def current_items(self) -> Optional[Tuple[Item, Item]]:
        if self.scheduler is None or self.scheduler.current_pair is None:
            return None
        left, right = self.scheduler.current_pair
        return self.state.working_set[left], self.state.working_set[right]

    def image_for(self, index: int) -> str:
        """Preloaded image for a working-set index, or its catalog reference."""
        return self.image_refs.get(index, self.state.working_set[index].image_ref)

    def _report(self, label: str, percent: int) -> None:
        if self.progress:
            self.progress(label, percent)

    def _report_comparison(self) -> None:
        state = self.state
        self._report(f"Comparison No. {state.cursor + 1} / {state.budget}", state.percent_complete)

    # -- lifecycle -------------------------------------------------------

    def start(self, selection: Optional[FilterSelection] = None) -> bool:
        """
        Begin a run against the current catalog version.

        A save staged by load() supplies the start time, skew flag and
        choices to replay.

        Returns:
            False when filtering left too few items
        """
        pending = self._pending
        if selection is None:
            selection = FilterSelection.defaults(self.catalog)

        try:
            working_set = build_working_set(self.catalog, selection)
        except InsufficientItems as e:
            logger.warning(str(e))
            if pending:
                # load() already switched catalogs; the old run no longer matches it
                self.reset_to_latest()
            self._pending = None
            if self.notify:
                self.notify(str(e))
            return False

        started_at = pending.started_at if pending else self.clock()
        if pending:
            clock_skew = pending.clock_skew
        else:
            clock_skew = detect_clock_skew(started_at, self.catalog)
        if clock_skew and not pending:
            logger.warning(f"Start time {started_at} predates catalog {self.catalog.version_id}")

        self.state = RunState(
            working_set=working_set,
            started_at=started_at,
            version_id=self.catalog.version_id,
            selection=selection,
            clock_skew=clock_skew,
        )
        self.scheduler = ComparisonScheduler(self.state)
        self.ledger = ScoreLedger(self.state)
        self._pending = None

        logger.info(
            f"Started sort of {len(working_set)} items against catalog {self.catalog.version_id} "
            f"({self.state.budget} comparisons)"
        )

        if self.preloader:
            self.image_refs = self.preloader.preload(working_set, self.progress)
        else:
            self.image_refs = {}

        if pending:
            self._replay(pending)
        elif self.scheduler.advance() is None:
            self._finish()
        else:
            self._report_comparison()
        return True

    def _replay(self, save: SaveData) -> None:
        """Re-apply saved choices through the live advance/apply path."""
        for number, digit in enumerate(save.choices, 1):
            pair = self.scheduler.advance()
            if pair is None:
                raise DecodeError(f"Save has {len(save.choices)} choices but the run ended after {number - 1}")
            self.ledger.apply(Outcome.from_digit(digit), pair[0], pair[1], self.scheduler.getstate())

        if self.scheduler.advance() is None:
            self._finish(save.finished_at or None)
        elif save.is_finished:
            raise DecodeError("Finished save does not replay to a finished run")
        else:
            self._report_comparison()

        logger.info(f"Replayed {len(save.choices)} saved choices")

    def _finish(self, elapsed: Optional[int] = None) -> None:
        state = self.state
        if not state.is_finished:
            state.finished_at = elapsed if elapsed else max(1, self.clock() - state.started_at)
        self._report("Completed!", 100)
        logger.info(f"Sort finished after {state.cursor} comparisons")

    def pick(self, outcome: Outcome) -> bool:
        """
        Record the user's choice for the current pair.

        Picking before a run exists starts one. Returns True if the
        choice was recorded.
        """
        if self.state is None:
            self.start()
            return False
        if self.state.is_finished or self.scheduler.current_pair is None:
            return False

        left, right = self.scheduler.current_pair
        self.ledger.apply(outcome, left, right, self.scheduler.getstate())

        if self.scheduler.advance() is None:
            self._finish()
        else:
            self._report_comparison()
            if self.autosave:
                self.save('Autosave')
        return True

    def undo(self) -> bool:
        """Step back one comparison. Only the most recent pick can be undone."""
        if self.state is None or self.state.is_finished:
            return False

        snapshot = self.ledger.undo()
        if snapshot is None:
            return False

        self.scheduler.setstate(snapshot.scheduler_state)
        self._report_comparison()
        if self.autosave:
            self.save('Autosave')
        return True

    def reset_to_latest(self) -> None:
        """Drop the active run and go back to the latest catalog version."""
        self.catalog = self.registry.latest()
        self.state = None
        self.scheduler = None
        self.ledger = None
        self.image_refs = {}
        self._pending = None

    # -- saving ----------------------------------------------------------

    def save_data(self) -> SaveData:
        state = self.state
        option_bits, sub_option_bits = state.selection.to_bits(self.catalog)
        return SaveData(
            started_at=state.started_at,
            finished_at=state.finished_at or 0,
            choices=state.choices,
            option_bits=option_bits,
            sub_option_bits=sub_option_bits,
            clock_skew=state.clock_skew,
        )

    def encode(self) -> str:
        return self.codec.encode(self.save_data())

    def share_url(self, encoded: str) -> str:
        return f"{self.url_scheme}://{self.sorter_url}?{encoded}"

    def save(self, save_type: str = 'Progress') -> Optional[str]:
        """
        Save progress to the store.

        Returns:
            The share URL for Progress / Last Result saves, None for autosaves
        """
        if self.state is None:
            logger.warning("Nothing to save: no sort has been started")
            return None

        encoded = self.encode()
        if self.store:
            self.store.save_progress(self.sorter_url, encoded, save_type)

        if save_type == 'Autosave':
            return None
        return self.share_url(encoded)

    def load(self, save_string: Optional[str] = None) -> bool:
        """
        Restore a run from a save string or share URL.

        Without an argument the stored save slot is used. A save that
        cannot be decoded is logged and the session falls back to the
        latest catalog version.

        Returns:
            True if a run was restored
        """
        if save_string is None:
            stored = self.store.load_progress(self.sorter_url) if self.store else None
            if stored is None:
                logger.info("No saved progress to load")
                return False
            save_string = stored[0]

        try:
            save = self.codec.decode(save_string)
            version = resolve_version(self.registry, save.started_at, save.clock_skew)
            selection = save.selection_for(version)

            self.catalog = version
            self._pending = save
            return self.start(selection)
        except DecodeError as e:
            logger.error(f"Error loading shareable link: {e}")
            self.reset_to_latest()
            return False

    def clear_saved(self) -> None:
        if self.store:
            self.store.clear_progress(self.sorter_url)

    # -- results ---------------------------------------------------------

    def results(self) -> List[RankedEntry]:
        return resolve_rankings(self.state)

    def export_text(self) -> str:
        return format_text_list(self.results())

    def _finished_epoch_ms(self) -> int:
        return self.state.started_at + self.state.finished_at

    def export_json(self, output_path: Optional[str] = None) -> str:
        rankings = self.results()
        path = output_path or export_path(self.export_dir, self.mode, self._finished_epoch_ms(), 'json')
        export_json(rankings, path)
        return path

    def export_csv(self, output_path: Optional[str] = None) -> str:
        rankings = self.results()
        path = output_path or export_path(self.export_dir, self.mode, self._finished_epoch_ms(), 'csv')
        export_csv(rankings, path)
        return path

    def completion_summary(self) -> str:
        return completion_summary(self.state)
