"""Tree builders and fake collaborators shared by the tests."""

from schedwatch.services.tree import File, Folder

XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def make_tree(layout, name="Schedule"):
    """Builds a fresh tree from nested dicts: folder name -> dict, file name -> url string."""
    root = Folder(name=name)
    _fill(root, layout)
    return root


def _fill(folder, layout):
    for name, value in layout.items():
        if isinstance(value, dict):
            _fill(folder.attach(Folder(name=name)), value)
        else:
            folder.attach(File(name=name, url=value))


def find(root, *names):
    node = root
    for name in names:
        node = next(child for child in node.children if child.name == name)
    return node


class FakeScraper:
    """Serves a queue of layouts, parsing each into a brand-new tree."""

    def __init__(self, *layouts, payloads=None, content_type="text/plain"):
        self.layouts = list(layouts)
        self.payloads = list(payloads or [])
        self.content_type = content_type
        self.fetches = 0
        self.downloads = []

    def fetch_tree(self):
        self.fetches += 1
        layout = self.layouts.pop(0)
        if isinstance(layout, Exception):
            raise layout
        return make_tree(layout)

    def download(self, url):
        self.downloads.append(url)
        payload = self.payloads.pop(0) if self.payloads else b"snapshot"
        if isinstance(payload, Exception):
            raise payload
        return iter([payload]), self.content_type


class FakeNotifier:
    """Records every delivery; chat ids in ``failing`` behave like unreachable recipients."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.sent = []

    async def broadcast(self, users, text, buttons=None):
        failed = []
        for user in sorted(users, key=lambda u: u.chat_id):
            if user.chat_id in self.failing:
                failed.append(user.chat_id)
                continue
            self.sent.append((user.chat_id, text, buttons))
        return failed

    def messages_for(self, chat_id):
        return [text for cid, text, _ in self.sent if cid == chat_id]
