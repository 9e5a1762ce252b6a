"""
Orchestrates the reconciliation passes (fetch, diff, retrieve, notify) and the
interactive commands that read or change subscriptions.

All tree, index and subscription state lives in one ``AppState`` owned by the ``Tracker``.
It is only ever mutated on the event loop; blocking work runs in worker threads and hands
its results back to the loop.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set, Tuple
from urllib.parse import urljoin

from schedwatch.config import SOURCE_BASE_URL
from schedwatch.services import codec
from schedwatch.services.differ import ChangeReport, reconcile
from schedwatch.services.file_store import FileStore
from schedwatch.services.notifier import (
    Notifier,
    format_modified_file,
    format_node_event,
    format_range_update,
)
from schedwatch.services.persistence import DatabaseManager
from schedwatch.services.range_differ import RangeUpdate, compare_snapshots, snapshot_paths
from schedwatch.services.scraper import Scraper
from schedwatch.services.subscriptions import SubscriptionRegistry
from schedwatch.services.tree import PATH_SEPARATOR, File, Folder, Node, Range, User, build_index
from schedwatch.services.tree_renderer import build_menu, menu_target

NOT_FOUND_NOTICE = "Path not found ❌"
DOWNLOAD_BUTTON_LABEL = "Download from the site"


@dataclass
class AppState:
    """The committed tree, its id index and the user registry."""
    tree: Folder
    users: Dict[int, User]
    index: Dict[str, Node] = field(default_factory=dict)

    def __post_init__(self):
        if not self.index:
            self.index = build_index(self.tree)

    @classmethod
    def empty(cls) -> "AppState":
        return cls(tree=Folder(name=""), users={})


def load_state(db_manager: DatabaseManager) -> AppState:
    """Reads the saved state; a missing or unreadable document yields an empty state."""
    try:
        document = db_manager.load_state()
        if document is None:
            logging.info("No saved state found, starting empty")
            return AppState.empty()
        data = codec.loads(document)
        tree, users = data["tree"], data["users"]
        if not isinstance(tree, Folder) or not isinstance(users, dict):
            raise ValueError("Saved state has an unexpected shape")
        state = AppState(tree=tree, users=users)
        logging.info(f"Loaded state: {len(users)} user(s), {len(state.index)} node(s)")
        return state
    except Exception as e:
        logging.error(f"Failed to load saved state, starting empty: {e}", exc_info=True)
        return AppState.empty()


class Tracker:
    """Runs reconciliation passes and serves the interactive commands."""

    def __init__(self, db_manager: DatabaseManager, scraper: Scraper, store: FileStore,
                 notifier: Notifier, state: Optional[AppState] = None):
        self.db_manager = db_manager
        self.scraper = scraper
        self.store = store
        self.notifier = notifier
        self.state = state if state is not None else load_state(db_manager)
        self.registry = SubscriptionRegistry(self.state.users)
        self.check_lock = asyncio.Lock()
        self._shutdown_started = False

    # --- Reconciliation pass ---
    async def run_check(self) -> Optional[ChangeReport]:
        """One pass. Returns None if it was skipped or aborted."""
        if self.check_lock.locked():
            logging.info("A check is already in progress, skipping this trigger")
            return None

        async with self.check_lock:
            logging.info("checking...")
            self.db_manager.log_check_event("check_start", "Starting check")
            try:
                new_tree = await asyncio.to_thread(self.scraper.fetch_tree)
            except Exception as e:
                logging.error(f"Check aborted, could not fetch content: {e}", exc_info=True)
                self.db_manager.log_check_event("check_error", f"Fetch failed: {e}", status="error")
                return None

            report = self.commit(new_tree)
            logging.info(
                f"added: {len(report.added)} removed: {len(report.removed)} "
                f"modified: {len(report.modified)}"
            )

            refreshed = await self.retrieve(report)
            failed = await self.notify(report, refreshed)
            if failed:
                self.db_manager.log_check_event(
                    "notify_failed", f"Delivery failed for {len(failed)} message(s)", status="warning"
                )
            self.db_manager.log_check_event("check_end", f"Check completed: {report.summary()}", status="success")
            logging.info("check finished")
            return report

    def commit(self, new_tree: Folder) -> ChangeReport:
        """Reconciles ``new_tree`` against the committed tree and swaps it in.

        Contains no await, so no handler can observe a half-replaced tree or index.
        """
        report = reconcile(new_tree, self.state.tree)
        index = build_index(new_tree)
        self.state.tree = new_tree
        self.state.index = index
        self.registry.prune(index)
        return report

    async def retrieve(self, report: ChangeReport) -> Set[File]:
        """Downloads added and modified files; returns the ones that got a new snapshot."""
        files = [node for added in report.added for node in added.walk() if isinstance(node, File)]
        files.extend(report.modified)
        refreshed = set()
        for file in files:
            if await self.download(file) is not None:
                refreshed.add(file)
        return refreshed

    async def download(self, file: File) -> Optional[str]:
        """Retrieves a new snapshot of ``file`` and appends it to its history."""
        try:
            snapshot = await asyncio.to_thread(self._fetch_snapshot, file)
        except Exception as e:
            logging.error(f"Exception occurred while downloading the file {file.id}: {e}", exc_info=True)
            return None
        file.saves.append(snapshot)
        return snapshot

    def _fetch_snapshot(self, file: File) -> str:
        trace = " -> ".join(file.display_path().split(PATH_SEPARATOR))
        logging.info(f"downloading {file.id} ({trace})")
        chunks, content_type = self.scraper.download(file.url)
        return self.store.save(file, chunks, content_type)

    async def compare_ranges(self, file: File) -> Dict[Range, RangeUpdate]:
        paths = snapshot_paths(file, self.store)
        ranges = [child for child in file.children if isinstance(child, Range)]
        if paths is None or not ranges:
            return {}
        try:
            return await asyncio.to_thread(compare_snapshots, paths[0], paths[1], ranges)
        except Exception as e:
            logging.error(f"Failed to compare snapshots of {file.id}: {e}", exc_info=True)
            return {}

    async def notify(self, report: ChangeReport, refreshed: Set[File]) -> list:
        """Fans every change out to the subscribers of its lineage; returns failed chat ids.

        Ranges are only compared for files in ``refreshed``, whose latest snapshot is new.
        """
        failed = []
        for node in report.added:
            failed += await self.notifier.broadcast(node.get_subscribers(), format_node_event("Added", node))
        for node in report.removed:
            failed += await self.notifier.broadcast(node.get_subscribers(), format_node_event("Removed", node))
        for file in report.modified:
            buttons = [(DOWNLOAD_BUTTON_LABEL, urljoin(SOURCE_BASE_URL, file.url))]
            failed += await self.notifier.broadcast(file.get_subscribers(), format_modified_file(file), buttons)

            if file not in refreshed:
                continue
            updates = await self.compare_ranges(file)
            for range_node, update in updates.items():
                failed += await self.notifier.broadcast(
                    range_node.get_subscribers(), format_range_update(range_node, file, update), buttons
                )
        return failed

    async def run_forever(self, interval_seconds: float):
        """Periodic passes; the next one is scheduled only after the previous one ended."""
        while True:
            try:
                await self.run_check()
            except Exception as e:
                logging.error(f"Critical error in scheduled check: {e}", exc_info=True)
            await asyncio.sleep(interval_seconds)

    def prune_history(self) -> int:
        """Drops snapshot ids whose files are gone from the store."""
        dropped = 0
        for node in self.state.index.values():
            if isinstance(node, File):
                dropped += len(self.store.prune(node))
        return dropped

    # --- Interactive commands ---
    def resolve(self, node_id: Optional[str]) -> Tuple[Node, Optional[str]]:
        """Looks a node up in the committed index, falling back to the root."""
        if not node_id:
            return self.state.tree, None
        node = self.state.index.get(node_id)
        if node is None:
            logging.info(f"Node {node_id} not found, falling back to root")
            return self.state.tree, NOT_FOUND_NOTICE
        return node, None

    def menu(self, chat_id: int, node_id: Optional[str] = None) -> Dict[str, Any]:
        user = self.registry.get_user(chat_id)
        node, notice = self.resolve(node_id)
        result = build_menu(menu_target(node), user)
        result["notice"] = notice
        return result

    def toggle(self, chat_id: int, node_id: str) -> Dict[str, Any]:
        user = self.registry.get_user(chat_id)
        node, notice = self.resolve(node_id)
        if notice is not None:
            return {"subscribed": None, "notice": notice, "menu": build_menu(node, user)}

        subscribed = self.registry.toggle(user, node)
        return {
            "subscribed": subscribed,
            "notice": "You subscribed ✔️" if subscribed else "You unsubscribed ✔️",
            "menu": build_menu(menu_target(node), user),
        }

    def declare_range(self, chat_id: int, file_id: str, address: str,
                      alias: Optional[str] = None) -> Dict[str, Any]:
        """Creates a named range on a spreadsheet file and subscribes the declaring user."""
        user = self.registry.get_user(chat_id)
        node = self.state.index.get(file_id)
        if node is None:
            return {"created": False, "message": "Node not found"}
        if not isinstance(node, File):
            return {"created": False, "message": "Node is not a file"}
        if not node.supports_ranges():
            return {"created": False, "message": "File does not support ranges"}
        try:
            range_node = Range.from_address(address, alias)
        except ValueError:
            return {"created": False, "message": "Range not recognized"}
        existing = next((child for child in node.children if child.name == range_node.name), None)
        if existing is not None:
            return {"created": False, "message": "Range already exists", "range_id": existing.id}

        node.attach(range_node)
        self.state.index.setdefault(range_node.id, range_node)
        self.registry.subscribe(user, range_node)
        logging.info(f"{user.chat_id} subscribed to new range {range_node.id}")
        return {"created": True, "message": "Range created, you are subscribed", "range_id": range_node.id}

    def stats(self) -> Dict[str, Any]:
        return {
            "status": "alive",
            "users": self.registry.count(),
            "subscribed": len(self.state.tree.get_subscribers()),
        }

    # --- Persistence ---
    def save(self):
        document = codec.dumps({"users": self.state.users, "tree": self.state.tree})
        self.db_manager.save_state(document)

    def shutdown(self) -> bool:
        """Saves the state once; later calls are ignored and return False."""
        if self._shutdown_started:
            logging.info("Shutdown already in progress, ignoring")
            return False
        self._shutdown_started = True
        try:
            self.save()
            logging.info("State saved")
        except Exception as e:
            logging.error(f"Failed to save state on shutdown: {e}", exc_info=True)
        return True


def create_tracker() -> Tracker:
    """Wires a tracker from the configured database, content source and bot."""
    return Tracker(DatabaseManager(), Scraper(), FileStore(), Notifier())
