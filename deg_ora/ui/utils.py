import base64
import logging
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def download_link(val: str, filename: str, extension: str) -> str:
    """
    Create a download link for a file with the given content, filename, and extension.

    The content is encoded in base64 and the link is an HTML 'a' tag with a
    'download' attribute.

    :param val: The content of the file to be downloaded.
    :param filename: The name of the file, without the extension.
    :param extension: The file extension (e.g., 'csv', 'json').
    :return: An HTML string containing the download link.
    """
    logger.info(f"Creating download link for file: {filename}.{extension}")
    b64 = base64.b64encode(val.encode("utf-8"))
    return f'<a href="data:application/octet-stream;base64,{b64.decode()}" download="{filename}.{extension}">{extension}</a>'


def save_upload(uploaded, directory: Path) -> Path:
    """
    Persist a Streamlit UploadedFile so the CSV readers can open it by path.

    :param uploaded: Object with ``name`` and ``getvalue()``
    :param directory: Target directory
    :return: Path of the written file
    """
    path = Path(directory) / Path(uploaded.name).name
    path.write_bytes(uploaded.getvalue())
    return path


def upload_dir() -> Path:
    return Path(tempfile.mkdtemp(prefix="deg_ora_"))


def run_key(de_file, bg_file, *settings) -> tuple:
    """
    Identify the inputs of an enrichment run, so stale results can be dropped.

    :param de_file: Uploaded DE table
    :param bg_file: Uploaded background table, or None
    :param settings: Config objects and options that affect the result
    :return: Tuple compared with ``==`` against the last submitted run
    """
    files = tuple(
        (uploaded.name, uploaded.size) if uploaded is not None else None for uploaded in (de_file, bg_file)
    )
    return files + settings
