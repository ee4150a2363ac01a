"""
Mesh Loader Module
메쉬 파일 로딩 및 데이터 구조 정의

Supports: OBJ, PLY, STL, OFF, GLTF/GLB formats
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List, Union
import numpy as np

try:
    import trimesh
except ImportError:
    raise ImportError("trimesh is required. Install with: pip install trimesh")


@dataclass
class MeshData:
    """
    3D 메쉬 데이터 컨테이너

    Attributes:
        vertices: (N, 3) 정점 좌표 배열
        faces: (M, 3) 면 인덱스 배열 (삼각형, 0-based)
        unit: 좌표 단위 ('mm', 'cm', 'm')
        filepath: 원본 파일 경로
    """
    vertices: np.ndarray
    faces: np.ndarray
    unit: str = 'mm'
    filepath: Optional[Path] = None

    # Computed properties cache
    _bounds: Optional[np.ndarray] = field(default=None, repr=False)
    _surface_area: Optional[float] = field(default=None, repr=False)

    def __post_init__(self):
        """데이터 검증 및 타입 변환"""
        self.vertices = np.asarray(self.vertices, dtype=np.float64).reshape(-1, 3)
        faces = np.asarray(self.faces, dtype=np.int32)
        self.faces = faces.reshape(0, 3) if faces.size == 0 else faces.reshape(-1, 3)

    @property
    def n_vertices(self) -> int:
        """정점 개수"""
        return len(self.vertices)

    @property
    def n_faces(self) -> int:
        """면 개수"""
        return len(self.faces)

    @property
    def bounds(self) -> np.ndarray:
        """경계 박스 [[min_x, min_y, min_z], [max_x, max_y, max_z]]"""
        if self._bounds is None:
            self._bounds = np.array([
                self.vertices.min(axis=0),
                self.vertices.max(axis=0)
            ])
        return self._bounds

    @property
    def extents(self) -> np.ndarray:
        """경계 박스 크기 [width, height, depth]"""
        return self.bounds[1] - self.bounds[0]

    @property
    def surface_area(self) -> float:
        """총 표면적"""
        if self._surface_area is None:
            v0 = self.vertices[self.faces[:, 0]]
            v1 = self.vertices[self.faces[:, 1]]
            v2 = self.vertices[self.faces[:, 2]]

            cross = np.cross(v1 - v0, v2 - v0)
            self._surface_area = float(np.linalg.norm(cross, axis=1).sum() / 2.0)
        return self._surface_area

    def get_boundary_edges(self) -> np.ndarray:
        """
        경계 엣지 목록 반환 (K, 2)

        면 방향 그대로의 방향성 엣지(a -> b)를 반환합니다. 반대 방향 엣지
        (b -> a)가 어떤 면에도 없으면 경계로 간주합니다.
        """
        directed: set[tuple[int, int]] = set()
        for face in self.faces:
            for i in range(3):
                directed.add((int(face[i]), int(face[(i + 1) % 3])))

        boundary_edges = sorted(e for e in directed if (e[1], e[0]) not in directed)
        if not boundary_edges:
            return np.zeros((0, 2), dtype=np.int32)
        return np.asarray(boundary_edges, dtype=np.int32)

    def get_boundary_loops(self) -> List[np.ndarray]:
        """
        경계 루프(들)을 정렬된 정점 인덱스 배열로 반환합니다.

        각 루프는 면 방향을 따라가며, 루프 내 가장 작은 정점 인덱스에서
        시작합니다. 루프 순서는 시작 정점 기준 오름차순입니다.

        Returns:
            List[np.ndarray]: 각 루프는 (L,) 형태의 정점 인덱스 배열 (반복된 시작점 없음)

        Raises:
            ValueError: 경계 정점에서 경계가 분기하는 경우 (비다양체)
        """
        boundary_edges = self.get_boundary_edges()
        if len(boundary_edges) == 0:
            return []

        next_vertex: dict[int, int] = {}
        for a, b in boundary_edges:
            a_i = int(a)
            if a_i in next_vertex:
                raise ValueError(f"Boundary branches at vertex {a_i} (non-manifold boundary)")
            next_vertex[a_i] = int(b)

        loops: list[np.ndarray] = []
        unvisited = set(next_vertex)
        while unvisited:
            start = min(unvisited)
            loop = [start]
            unvisited.discard(start)
            curr = next_vertex[start]
            # 방문한 정점으로 돌아오면 중단되므로 무한루프 없음
            while curr != start:
                if curr not in unvisited:
                    raise ValueError(f"Open boundary chain at vertex {curr}")
                loop.append(curr)
                unvisited.discard(curr)
                curr = next_vertex[curr]
            loops.append(np.asarray(loop, dtype=np.int32))

        return loops

    def to_trimesh(self) -> 'trimesh.Trimesh':
        """trimesh 객체로 변환"""
        return trimesh.Trimesh(
            vertices=self.vertices,
            faces=self.faces,
            process=False
        )

    @classmethod
    def from_trimesh(cls, mesh: 'trimesh.Trimesh',
                     filepath: Optional[Path] = None,
                     unit: str = 'mm') -> 'MeshData':
        """trimesh 객체에서 생성"""
        return cls(
            vertices=mesh.vertices,
            faces=mesh.faces,
            unit=unit,
            filepath=filepath
        )


class MeshLoader:
    """
    다양한 3D 포맷의 메쉬 파일 로더

    Supported formats:
        - OBJ (Wavefront)
        - PLY (Polygon File Format)
        - STL (Stereolithography)
        - OFF (Object File Format)
        - GLTF/GLB (GL Transmission Format)
    """

    SUPPORTED_FORMATS = {
        '.obj': 'Wavefront OBJ',
        '.ply': 'Polygon File Format',
        '.stl': 'Stereolithography',
        '.off': 'Object File Format',
        '.gltf': 'GL Transmission Format',
        '.glb': 'GL Transmission Format (Binary)',
    }

    def __init__(self, default_unit: str = 'mm'):
        """
        Args:
            default_unit: 기본 좌표 단위 ('mm', 'cm', 'm')
        """
        self.default_unit = default_unit

    @classmethod
    def get_supported_formats(cls) -> dict:
        """지원 포맷 목록 반환"""
        return cls.SUPPORTED_FORMATS.copy()

    def load(self, filepath: Union[str, Path], unit: Optional[str] = None) -> MeshData:
        """
        메쉬 파일 로드

        Args:
            filepath: 메쉬 파일 경로
            unit: 좌표 단위 (None이면 default_unit 사용)

        Returns:
            MeshData: 로드된 메쉬 데이터

        Raises:
            FileNotFoundError: 파일이 존재하지 않음
            ValueError: 지원하지 않는 포맷
        """
        filepath = Path(filepath)

        if not filepath.exists():
            raise FileNotFoundError(f"File not found: {filepath}")

        ext = filepath.suffix.lower()
        if ext not in self.SUPPORTED_FORMATS:
            raise ValueError(
                f"Unsupported format: {ext}\n"
                f"Supported formats: {list(self.SUPPORTED_FORMATS.keys())}"
            )

        unit = unit or self.default_unit

        # STL은 정점이 면마다 중복되므로 병합(process=True)이 필요합니다.
        process = ext == '.stl'
        mesh = trimesh.load(str(filepath), force='mesh', process=process)

        # Scene인 경우 단일 메쉬로 병합
        if isinstance(mesh, trimesh.Scene):
            meshes = [g for g in mesh.geometry.values() if isinstance(g, trimesh.Trimesh)]
            if len(meshes) == 0:
                raise ValueError(f"No valid mesh found in: {filepath}")
            mesh = trimesh.util.concatenate(meshes)

        if not isinstance(mesh, trimesh.Trimesh):
            raise TypeError(f"Expected trimesh.Trimesh, got {type(mesh).__name__}")

        return MeshData.from_trimesh(mesh, filepath=filepath, unit=unit)
