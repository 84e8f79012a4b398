# renderer.py

import pygame
import numpy as np
import constants


class Viewport:
    """
    Maps between pixel coordinates and the scaled simulation world.

    The world square [-1, 1] x [-1, 1] (before WORLD_SCALE) is fitted to the
    window height and centred horizontally. Pixel and world y both point down.
    """
    def __init__(self, width: int, height: int):
        self.resize(width, height)

    def resize(self, width: int, height: int):
        self.width = width
        self.height = height
        self.pixels_per_unit = 0.5 * height / constants.WORLD_SCALE
        self.offset_x = 0.5 * (width - height) + 0.5 * height
        self.offset_y = 0.5 * height

    def map_pointer(self, pixel):
        """Pixel position of the pointer -> scaled world position."""
        return np.array([
            (pixel[0] - self.offset_x) / self.pixels_per_unit,
            (pixel[1] - self.offset_y) / self.pixels_per_unit,
        ])

    def to_pixel(self, world):
        return (int(round(world[0] * self.pixels_per_unit + self.offset_x)),
                int(round(world[1] * self.pixels_per_unit + self.offset_y)))

    def to_pixel_length(self, length: float) -> int:
        return max(1, int(round(length * self.pixels_per_unit)))

    def world_rect(self, world_min, world_max) -> pygame.Rect:
        """Pixel rectangle covered by the given world corners."""
        left, top = self.to_pixel(world_min)
        right, bottom = self.to_pixel(world_max)
        return pygame.Rect(left, top, right - left, bottom - top)


def _draw_capsule(screen, viewport, capsule, color):
    start = viewport.to_pixel(capsule.p0)
    end = viewport.to_pixel(capsule.p1)
    radius = viewport.to_pixel_length(capsule.radius)
    pygame.draw.line(screen, color, start, end, 2 * radius)
    pygame.draw.circle(screen, color, start, radius)
    pygame.draw.circle(screen, color, end, radius)


def draw(screen: pygame.Surface, simulation, viewport: Viewport, selected_emitter=None):
    """
    Draws capsules, the pending capsule, particles and emitters, in that order.
    Only reads the simulation through its read-only accessors.
    """
    for capsule in simulation.capsules:
        _draw_capsule(screen, viewport, capsule, capsule.color)

    pending = simulation.pending_capsule
    if pending is not None:
        _draw_capsule(screen, viewport, pending, constants.PENDING_CAPSULE_COLOR)

    frame = simulation.particles
    radius = viewport.to_pixel_length(frame.radius)
    for position, color in zip(frame.positions, frame.colors):
        pygame.draw.circle(screen, tuple(int(c) for c in color), viewport.to_pixel(position), radius)

    for emitter in simulation.emitters:
        color = constants.SELECTED_EMITTER_COLOR if emitter is selected_emitter else emitter.color
        center = viewport.to_pixel(emitter.position)
        pygame.draw.circle(screen, color, center, viewport.to_pixel_length(emitter.radius), 2)
        tip = emitter.position + emitter.jet_direction() * emitter.radius * 2.0
        pygame.draw.line(screen, color, center, viewport.to_pixel(tip), 2)
