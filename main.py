# main.py

import pygame
import constants
import logging
import logger_setup
import numpy as np
import renderer
from fluid_simulation import FluidSimulation, load_config

# Get the application's dedicated logger
logger = logging.getLogger("fluid_sim")

ANGLE_STEP = 5.0  # Degrees per key press.


def handle_event(event, simulation, viewport, selected_emitter):
    """
    Translates one pygame event into editing operations.
    Returns (keep_running, selected_emitter).
    """
    if event.type == pygame.QUIT:
        return False, selected_emitter

    if event.type == pygame.MOUSEBUTTONDOWN:
        world_pos = viewport.map_pointer(event.pos)
        if event.button == 1:
            simulation.add_or_commit_capsule(world_pos)
        elif event.button == 3:
            simulation.remove_capsule_at(world_pos)

    elif event.type == pygame.KEYDOWN:
        world_pos = viewport.map_pointer(pygame.mouse.get_pos())
        if event.key == pygame.K_ESCAPE:
            simulation.cancel_pending_capsule()
        elif event.key == pygame.K_r:
            simulation.reset()
        elif event.key == pygame.K_e:
            selected_emitter = simulation.add_emitter(world_pos)
        elif event.key == pygame.K_x:
            removed = simulation.remove_emitter_at(world_pos)
            if removed is not None and removed is selected_emitter:
                selected_emitter = None
        elif event.key == pygame.K_s:
            selected_emitter = simulation.select_emitter_at(world_pos)
            if selected_emitter is not None:
                logger.info(f"Selected {selected_emitter}")
        elif event.key in (pygame.K_UP, pygame.K_DOWN) and selected_emitter is not None:
            sign = 1.0 if event.key == pygame.K_UP else -1.0
            selected_emitter.base_angle += sign * ANGLE_STEP
            logger.info(f"Emitter base angle set to {selected_emitter.base_angle:.1f} degrees.")

    elif event.type == pygame.VIDEORESIZE:
        viewport.resize(event.w, event.h)

    return True, selected_emitter


def run_simulation_loop(simulation, screen, clock, viewport):
    """Runs frames until the window is closed."""
    running = True
    tick = 0
    selected_emitter = None

    while running:
        for event in pygame.event.get():
            running, selected_emitter = handle_event(event, simulation, viewport, selected_emitter)
            if not running:
                break

        # --- Physics & Logic Update ---
        dt = clock.tick(constants.FPS) / 1000.0
        pointer = viewport.map_pointer(pygame.mouse.get_pos())
        simulation.update(viewport.width, viewport.height, pointer, dt)

        # --- Logging (throttled) ---
        if tick % 100 == 0:
            frame = simulation.particles
            mean_density = float(np.mean(frame.densities)) if len(frame.densities) else 0.0
            logger.debug(
                f"Tick={tick}, "
                f"Particles={simulation.num_particles}, "
                f"Capsules={len(simulation.capsules)}, "
                f"Emitters={len(simulation.emitters)}, "
                f"MeanDensity={mean_density:.3f}"
            )

        # --- Drawing ---
        screen.fill(constants.BLACK)
        pygame.draw.rect(screen, constants.WHITE, viewport.world_rect(simulation.world_min, simulation.world_max), 1)
        renderer.draw(screen, simulation, viewport, selected_emitter)
        pygame.display.flip()
        tick += 1


def main():
    """
    Main function to initialize and run the interactive fluid simulation.
    """
    # --- Setup ---
    logger_setup.setup_logging()

    config = load_config()
    sim_config = config['simulation']

    logger.info("Application starting...")
    logger.info(f"Loaded configuration: {config}")

    # Initialize the master random number generator (RNG)
    rng = np.random.default_rng(config['master_seed'])
    logger.info(f"Master RNG initialized with seed: {config['master_seed']}")

    # --- Initialization ---
    pygame.init()
    screen = pygame.display.set_mode((constants.WIDTH, constants.HEIGHT), pygame.RESIZABLE)
    pygame.display.set_caption(constants.TITLE)
    clock = pygame.time.Clock()

    simulation = FluidSimulation(config=sim_config, rng=rng)
    viewport = renderer.Viewport(constants.WIDTH, constants.HEIGHT)

    run_simulation_loop(simulation, screen, clock, viewport)

    logger.info("Application shutting down.")
    pygame.quit()

if __name__ == "__main__":
    main()
