"""
ModernGL compute device.

Runs the kernels as OpenGL 4.3 compute shaders. A program is one GLSL source that
declares its kernels with pragma lines:

    #pragma kernel AddC
    #pragma kernel AddCI
    #pragma kernel RecursiveConvolveFwd 64 1

Each kernel is compiled from the same source with KERNEL_<name>, LOCAL_SIZE_X and
LOCAL_SIZE_Y defined and the work-group layout declared, so the source selects its
entry point with #ifdef blocks. Sources are given to the constructor or loaded from
"<program>.comp" in the directories of settings.GL_SHADER_PATHS and must not carry
their own #version line.

Binding conventions inside the GLSL source:
    Sources      uniform sampler2D SrcA, SrcB
    Destination  layout(<format>) uniform image2D Dst
    Vectors      uniform vec4 TextureSize, TexelSize, ScalarA .. ScalarD
    Buffers      buffer Histogram { uvec4 bins[256]; }
"""

import os
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

import moderngl
import numpy as np

from ..core import DST, GroupSize, ImageFormat, NDArray, ProgramInfo
from ..errors import InvalidOperation, ResourceLifecycleError, ResourceNotFound
from ..settings import DEFAULT_WORK_GROUP_SIZE, GL_SHADER_PATHS, get_logger
from .reference import ReadbackRequest

logger = get_logger(__name__)

GL_VERSION = 430

KERNEL_PRAGMA = re.compile(r"^\s*#pragma\s+kernel\s+(\w+)(?:\s+(\d+)\s+(\d+))?", re.MULTILINE)

# moderngl texture dtype per channel representation
TEXTURE_DTYPES = {
    ("unorm", 8): "f1",
    ("float", 16): "f2",
    ("float", 32): "f4",
}


def parse_kernels(source: str) -> List[Tuple[str, GroupSize]]:
    """
    Kernel names and work-group sizes declared in a program source.

    Returns:
        List of (kernel name, (x, y)) in declaration order
    """
    kernels = []
    for match in KERNEL_PRAGMA.finditer(source):
        name, x, y = match.groups()
        group_size = (int(x), int(y)) if x else DEFAULT_WORK_GROUP_SIZE
        kernels.append((name, group_size))
    return kernels


def kernel_source(source: str, name: str, group_size: GroupSize) -> str:
    """Prefix a program source with the version, defines and layout of one kernel."""
    x, y = group_size
    header = (
        f"#version {GL_VERSION}\n"
        f"#define KERNEL_{name}\n"
        f"#define LOCAL_SIZE_X {x}\n"
        f"#define LOCAL_SIZE_Y {y}\n"
        f"layout(local_size_x = {x}, local_size_y = {y}) in;\n"
    )
    return header + source


class GLImage:
    """A moderngl texture with the format it was created with."""

    def __init__(self, texture: moderngl.Texture, fmt: ImageFormat, random_write: bool):
        self.texture = texture
        self.format = fmt
        self.random_write = random_write
        self.destroyed = False

    @property
    def width(self) -> int:
        return self.texture.width

    @property
    def height(self) -> int:
        return self.texture.height


class GLBuffer:
    """A moderngl storage buffer of count x components uint32 counters."""

    def __init__(self, buffer: moderngl.Buffer, count: int, components: int):
        self.buffer = buffer
        self.count = count
        self.components = components


class GLProgram:
    """Compiled kernels of one program and its bound parameters."""

    def __init__(self, name: str, kernels: List[Tuple[str, GroupSize, moderngl.ComputeShader]]):
        self.name = name
        self.kernels = kernels
        self.textures: Dict[int, Dict[str, GLImage]] = {}
        self.buffers: Dict[int, Dict[str, GLBuffer]] = {}
        self.vectors: Dict[str, Tuple[float, float, float, float]] = {}
        self.released = False

    def release(self) -> None:
        for _, _, shader in self.kernels:
            shader.release()
        self.released = True


class ModernGLDevice:
    """
    Device protocol implemented with ModernGL compute shaders.

    Args:
        sources: Mapping of program name to GLSL source; programs missing here are
            looked up on the shader path
        ctx: Existing ModernGL context to use; one is created when omitted
        standalone: Create a standalone context rather than attaching to the
            current one (ignored when ctx is given)
    """

    supports_async_readback = False

    def __init__(
        self,
        sources: Optional[Dict[str, str]] = None,
        ctx: Optional[moderngl.Context] = None,
        standalone: bool = True,
    ):
        if ctx is None:
            ctx = moderngl.create_standalone_context(require=GL_VERSION) if standalone else moderngl.create_context(
                require=GL_VERSION
            )
            self._owns_context = True
        else:
            self._owns_context = False
        self.ctx = ctx
        self.sources = dict(sources or {})
        self.programs: Dict[str, GLProgram] = {}

    def __enter__(self) -> "ModernGLDevice":
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()

    def release(self) -> None:
        """Release all programs, and the context if this device created it."""
        for program in self.programs.values():
            if not program.released:
                program.release()
        self.programs = {}
        if self._owns_context and self.ctx is not None:
            self.ctx.release()
        self.ctx = None

    def _load_source(self, name: str) -> str:
        if name in self.sources:
            return self.sources[name]
        for directory in GL_SHADER_PATHS:
            path = os.path.join(directory, f"{name}.comp")
            if os.path.isfile(path):
                with open(path, encoding="utf-8") as f:
                    return f.read()
        raise ResourceNotFound("program", name)

    def load_program(self, name: str) -> ProgramInfo:
        source = self._load_source(name)
        declared = parse_kernels(source)
        if not declared:
            raise ResourceNotFound("kernel declaration", name)

        kernels = []
        try:
            for kernel_name, group_size in declared:
                shader = self.ctx.compute_shader(kernel_source(source, kernel_name, group_size))
                kernels.append((kernel_name, group_size, shader))
        except moderngl.Error:
            for _, _, shader in kernels:
                shader.release()
            raise
        program = GLProgram(name, kernels)
        self.programs[name] = program
        logger.info("Compiled %d kernels of program %s", len(kernels), name)
        return ProgramInfo(name, [(k, gs) for k, gs, _ in kernels], native=program)

    def release_program(self, program: ProgramInfo) -> None:
        native = program.native
        if not native.released:
            native.release()
        self.programs.pop(program.name, None)

    def _program(self, program: ProgramInfo) -> GLProgram:
        native = program.native
        if native.released:
            raise ResourceLifecycleError(f"Program '{program.name}' has been released")
        return native

    def create_image(self, width: int, height: int, fmt: ImageFormat, random_write: bool = True) -> GLImage:
        if random_write and not fmt.random_write:
            raise InvalidOperation(f"Format {fmt.name} does not support random write")
        dtype = TEXTURE_DTYPES[(fmt.representation, fmt.bits)]
        texture = self.ctx.texture((width, height), fmt.channels, dtype=dtype)
        texture.filter = (moderngl.NEAREST, moderngl.NEAREST)
        texture.repeat_x = False
        texture.repeat_y = False
        return GLImage(texture, fmt, random_write)

    def destroy_image(self, image: GLImage) -> None:
        if image.destroyed:
            raise ResourceLifecycleError("Image destroyed twice")
        image.texture.release()
        image.destroyed = True

    def write_pixels(self, image: GLImage, data: NDArray) -> None:
        data = np.asarray(data)
        values = data.astype(np.float32)
        if data.dtype == np.uint8:
            values /= 255.0
        if values.ndim == 2:
            values = values[..., np.newaxis]

        fmt = image.format
        pixels = np.zeros((image.height, image.width, fmt.channels), dtype=np.float32)
        if fmt.channels == 4:
            pixels[..., 3] = 1.0
        channels = min(values.shape[2], fmt.channels)
        pixels[..., :channels] = values[..., :channels]

        if fmt.is_float:
            raw = pixels.astype(fmt.dtype)
        else:
            raw = np.round(np.clip(pixels, 0.0, 1.0) * 255.0).astype(np.uint8)
        image.texture.write(np.ascontiguousarray(raw).tobytes())

    def read_pixels(self, image: GLImage, x: int, y: int, width: int, height: int) -> NDArray:
        if image.destroyed:
            raise ResourceLifecycleError("Reading a destroyed image")
        channels = image.format.channels
        fbo = self.ctx.framebuffer(color_attachments=[image.texture])
        try:
            raw = fbo.read(viewport=(x, y, width, height), components=channels, dtype="f4")
        finally:
            fbo.release()
        return np.frombuffer(raw, dtype=np.float32).reshape(height, width, channels).copy()

    def request_readback(self, image: GLImage, x: int, y: int, width: int, height: int) -> ReadbackRequest:
        return ReadbackRequest(self.read_pixels(image, x, y, width, height))

    def create_buffer(self, count: int, components: int) -> GLBuffer:
        return GLBuffer(self.ctx.buffer(reserve=count * components * 4), count, components)

    def destroy_buffer(self, buffer: GLBuffer) -> None:
        buffer.buffer.release()

    def read_buffer(self, buffer: GLBuffer) -> NDArray:
        return np.frombuffer(buffer.buffer.read(), dtype=np.uint32).reshape(buffer.count, buffer.components).copy()

    def bind_texture(self, program: ProgramInfo, kernel_id: int, slot: str, image: GLImage) -> None:
        self._program(program).textures.setdefault(kernel_id, {})[slot] = image

    def bind_vector(self, program: ProgramInfo, slot: str, value: Sequence[float]) -> None:
        padded = list(value) + [0.0] * (4 - len(value))
        self._program(program).vectors[slot] = tuple(float(v) for v in padded)

    def bind_buffer(self, program: ProgramInfo, kernel_id: int, slot: str, buffer: Any) -> None:
        self._program(program).buffers.setdefault(kernel_id, {})[slot] = buffer

    def dispatch(self, program: ProgramInfo, kernel_id: int, gx: int, gy: int, gz: int = 1) -> None:
        native = self._program(program)
        _, _, shader = native.kernels[kernel_id]

        # Uniforms the compiler optimized out are skipped
        for slot, value in native.vectors.items():
            member = shader.get(slot, None)
            if member is not None:
                member.value = value

        unit = 0
        for slot, image in native.textures.get(kernel_id, {}).items():
            if image.destroyed:
                raise ResourceLifecycleError(f"{native.name} kernel {kernel_id} uses a destroyed image in {slot}")
            member = shader.get(slot, None)
            if member is None:
                continue
            if slot == DST:
                image.texture.bind_to_image(unit, read=True, write=True)
            else:
                image.texture.use(location=unit)
            member.value = unit
            unit += 1

        for binding, (slot, buffer) in enumerate(native.buffers.get(kernel_id, {}).items()):
            member = shader.get(slot, None)
            if member is not None:
                member.binding = binding
                buffer.buffer.bind_to_storage_buffer(binding)

        shader.run(gx, gy, gz)
        self.ctx.memory_barrier()
