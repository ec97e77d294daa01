"""Binary glTF (GLB) scene encoding and PNG texture encoding."""

from __future__ import annotations

import io
from typing import Optional, Protocol

import numpy as np
import pygltflib
from PIL import Image

from .constants import (
    DEFAULT_BASE_COLOR,
    DEFAULT_METALLIC_FACTOR,
    DEFAULT_ROUGHNESS_FACTOR,
    INDEX_16BIT_LIMIT,
    PNG_MIME_TYPE,
)


def encode_png(rgba: np.ndarray) -> bytes:
    """Encode an (h, w, 4) uint8 RGBA array as PNG."""

    array = np.asarray(rgba)
    if array.ndim != 3 or array.shape[2] != 4:
        raise ValueError(f"Expected an (h, w, 4) RGBA array, got shape {array.shape}")
    img = Image.fromarray(array.astype(np.uint8), mode="RGBA")
    buf = io.BytesIO()
    img.save(buf, format="PNG", optimize=True)
    return buf.getvalue()


class SceneEncoder(Protocol):
    def encode(
        self,
        positions: np.ndarray,
        uvs: np.ndarray,
        indices: np.ndarray,
        normals: Optional[np.ndarray] = None,
        image: Optional[bytes] = None,
    ) -> bytes: ...


def index_component_type(vertex_count: int, index_count: int) -> int:
    if vertex_count > INDEX_16BIT_LIMIT or index_count > INDEX_16BIT_LIMIT:
        return pygltflib.UNSIGNED_INT
    return pygltflib.UNSIGNED_SHORT


def _pad4(data: bytes) -> bytes:
    return data + b"\x00" * (-len(data) % 4)


class _BlobBuilder:
    def __init__(self) -> None:
        self.parts: list[bytes] = []
        self.views: list[pygltflib.BufferView] = []
        self.offset = 0

    def add(self, data: bytes, target: Optional[int] = None) -> int:
        self.views.append(
            pygltflib.BufferView(
                buffer=0, byteOffset=self.offset, byteLength=len(data), target=target
            )
        )
        padded = _pad4(data)
        self.parts.append(padded)
        self.offset += len(padded)
        return len(self.views) - 1

    def blob(self) -> bytes:
        return b"".join(self.parts)


class GlbEncoder:
    """Encodes one textured terrain mesh as a single-node GLB document."""

    def __init__(
        self,
        *,
        base_color: tuple[float, float, float, float] = DEFAULT_BASE_COLOR,
        roughness: float = DEFAULT_ROUGHNESS_FACTOR,
        metallic: float = DEFAULT_METALLIC_FACTOR,
    ) -> None:
        self._base_color = [float(c) for c in base_color]
        self._roughness = float(roughness)
        self._metallic = float(metallic)

    def encode(
        self,
        positions: np.ndarray,
        uvs: np.ndarray,
        indices: np.ndarray,
        normals: Optional[np.ndarray] = None,
        image: Optional[bytes] = None,
    ) -> bytes:
        pos = np.asarray(positions, dtype=np.float32).reshape(-1, 3)
        tex = np.asarray(uvs, dtype=np.float32).reshape(-1, 2)
        flat_indices = np.asarray(indices).reshape(-1)
        vertex_count = int(pos.shape[0])

        component_type = index_component_type(vertex_count, int(flat_indices.size))
        index_dtype = np.uint32 if component_type == pygltflib.UNSIGNED_INT else np.uint16

        builder = _BlobBuilder()
        accessors: list[pygltflib.Accessor] = []

        def add_accessor(
            data: np.ndarray,
            *,
            kind: str,
            component: int,
            target: int,
            with_bounds: bool = False,
        ) -> int:
            view = builder.add(data.tobytes(), target=target)
            accessor = pygltflib.Accessor(
                bufferView=view,
                componentType=component,
                count=int(data.shape[0]),
                type=kind,
            )
            if with_bounds and data.size:
                accessor.min = [float(v) for v in data.min(axis=0)]
                accessor.max = [float(v) for v in data.max(axis=0)]
            accessors.append(accessor)
            return len(accessors) - 1

        attributes = pygltflib.Attributes(
            POSITION=add_accessor(
                pos,
                kind=pygltflib.VEC3,
                component=pygltflib.FLOAT,
                target=pygltflib.ARRAY_BUFFER,
                with_bounds=True,
            )
        )
        if normals is not None:
            attributes.NORMAL = add_accessor(
                np.asarray(normals, dtype=np.float32).reshape(-1, 3),
                kind=pygltflib.VEC3,
                component=pygltflib.FLOAT,
                target=pygltflib.ARRAY_BUFFER,
            )
        attributes.TEXCOORD_0 = add_accessor(
            tex,
            kind=pygltflib.VEC2,
            component=pygltflib.FLOAT,
            target=pygltflib.ARRAY_BUFFER,
        )
        indices_accessor = add_accessor(
            flat_indices.astype(index_dtype),
            kind=pygltflib.SCALAR,
            component=component_type,
            target=pygltflib.ELEMENT_ARRAY_BUFFER,
        )

        pbr = pygltflib.PbrMetallicRoughness(
            baseColorFactor=self._base_color,
            metallicFactor=self._metallic,
            roughnessFactor=self._roughness,
        )
        images: list[pygltflib.Image] = []
        textures: list[pygltflib.Texture] = []
        samplers: list[pygltflib.Sampler] = []
        if image is not None:
            images.append(
                pygltflib.Image(bufferView=builder.add(image), mimeType=PNG_MIME_TYPE)
            )
            samplers.append(
                pygltflib.Sampler(
                    magFilter=pygltflib.LINEAR,
                    minFilter=pygltflib.LINEAR,
                    wrapS=pygltflib.CLAMP_TO_EDGE,
                    wrapT=pygltflib.CLAMP_TO_EDGE,
                )
            )
            textures.append(pygltflib.Texture(source=0, sampler=0))
            pbr.baseColorTexture = pygltflib.TextureInfo(index=0)

        blob = builder.blob()
        gltf = pygltflib.GLTF2(
            scene=0,
            scenes=[pygltflib.Scene(nodes=[0])],
            nodes=[pygltflib.Node(mesh=0)],
            meshes=[
                pygltflib.Mesh(
                    primitives=[
                        pygltflib.Primitive(
                            attributes=attributes,
                            indices=indices_accessor,
                            material=0,
                            mode=pygltflib.TRIANGLES,
                        )
                    ]
                )
            ],
            materials=[
                pygltflib.Material(pbrMetallicRoughness=pbr, doubleSided=False)
            ],
            accessors=accessors,
            bufferViews=builder.views,
            buffers=[pygltflib.Buffer(byteLength=len(blob))],
            images=images,
            textures=textures,
            samplers=samplers,
        )
        gltf.set_binary_blob(blob)
        return b"".join(gltf.save_to_bytes())
