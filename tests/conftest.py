"""
Pytest fixtures: sample workflow documents and throwaway SQLite databases
"""

import copy
import sys
from pathlib import Path

import pytest

# Make the repo root importable when running without an editable install
sys.path.insert(0, str(Path(__file__).parent.parent))

from database.database import initialize_database, close_database  # noqa: E402


API_WORKFLOW = {
    "4": {
        "class_type": "CheckpointLoaderSimple",
        "inputs": {"ckpt_name": "sd_xl_base_1.0.safetensors"},
    },
    "5": {
        "class_type": "EmptyLatentImage",
        "inputs": {"width": 1024, "height": 768, "batch_size": 1},
    },
    "6": {
        "class_type": "CLIPTextEncode",
        "inputs": {"text": "  a lighthouse at dusk, oil painting  ", "clip": ["4", 1]},
    },
    "7": {
        "class_type": "CLIPTextEncode",
        "inputs": {"text": "blurry, low quality", "clip": ["4", 1]},
    },
    "3": {
        "class_type": "KSampler",
        "inputs": {
            "seed": 42,
            "steps": 30,
            "cfg": 7.5,
            "sampler_name": "euler",
            "scheduler": "normal",
            "denoise": 1.0,
            "model": ["4", 0],
            "positive": ["6", 0],
            "negative": ["7", 0],
            "latent_image": ["5", 0],
        },
    },
    "8": {
        "class_type": "VAEDecode",
        "inputs": {"samples": ["3", 0], "vae": ["4", 2]},
    },
}

UI_WORKFLOW = {
    "last_node_id": 9,
    "last_link_id": 12,
    "nodes": [
        {
            "id": 4,
            "type": "CheckpointLoaderSimple",
            "widgets_values": ["dreamshaper_8.safetensors"],
            "outputs": [{"name": "MODEL", "links": [1]}, {"name": "CLIP", "links": [3, 5]}],
        },
        {
            "id": 6,
            "type": "CLIPTextEncode",
            "title": "Scene",
            "widgets_values": ["a red fox in the snow"],
            "inputs": [{"name": "clip", "link": 3}],
        },
        {
            "id": 7,
            "type": "CLIPTextEncode",
            "widgets_values": ["watermark, text"],
            "inputs": [{"name": "clip", "link": 5}],
        },
        {
            "id": 5,
            "type": "EmptyLatentImage",
            "widgets_values": [512, 640, 1],
        },
        {
            "id": 3,
            "type": "KSampler",
            "widgets_values": [1234, 25, 6.0, "dpmpp_2m", "karras"],
            "inputs": [
                {"name": "model", "link": 1},
                {"name": "positive", "link": 10},
                {"name": "negative", "link": 11},
                {"name": "latent_image", "link": 12},
            ],
        },
    ],
    "links": [
        [1, 4, 0, 3, 0, "MODEL"],
        [3, 4, 1, 6, 0, "CLIP"],
        [5, 4, 1, 7, 0, "CLIP"],
        [10, 6, 0, 3, 1, "CONDITIONING"],
        [11, 7, 0, 3, 2, "CONDITIONING"],
        [12, 5, 0, 3, 3, "LATENT"],
    ],
}


@pytest.fixture
def api_workflow():
    return copy.deepcopy(API_WORKFLOW)


@pytest.fixture
def ui_workflow():
    return copy.deepcopy(UI_WORKFLOW)


@pytest.fixture
def db_manager(tmp_path):
    manager = initialize_database(f"sqlite:///{tmp_path / 'vault.db'}")
    yield manager
    close_database()


@pytest.fixture
def client(db_manager):
    from fastapi.testclient import TestClient
    from web_interface import app

    with TestClient(app) as test_client:
        yield test_client
