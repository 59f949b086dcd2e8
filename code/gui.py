import os
from typing import Optional, Tuple

import pygame
from pygame.locals import *
from PIL import Image

from motorways import ActionType, EnvConfig, MotorwaysEnv, TileType
from render import PANEL_TILES, render_image
from rlagent import RandomAgent

# ---------- Config ----------
SCALE = 28               # pixels per tile
FPS = 60
STEP_EVERY_MS = 200      # auto-run pace
FONT_NAME = None         # default pygame font
BG_COLOR = (30, 30, 30)
PANEL_H = 60
WHITE = (240, 240, 240)

MODE_KEYS = {
    K_r: ActionType.ROAD,
    K_m: ActionType.MOTORWAY,
    K_b: ActionType.BRIDGE,
    K_o: ActionType.ROUNDABOUT,
    K_t: ActionType.TRAFFIC_LIGHT,
}


# ---------- Helpers ----------
def pil_to_surface(pil_img: Image.Image) -> pygame.Surface:
    mode = pil_img.mode
    size = pil_img.size
    data = pil_img.tobytes()
    return pygame.image.frombytes(data, size, mode)


def grid_pos_from_mouse(mx: int, my: int, w: int, h: int, scale: int = SCALE) -> Optional[Tuple[int, int]]:
    gx = mx // scale
    gy = my // scale
    if 0 <= gx < w and 0 <= gy < h:
        return (gx, gy)
    return None


# ---------- UI App ----------
class App:
    def __init__(self, seed: Optional[int] = None, config: Optional[EnvConfig] = None):
        pygame.init()
        self.env = MotorwaysEnv(seed=seed, config=config)
        self.env.reset()
        self.agent = RandomAgent(seed=seed, grid_width=self.env.grid.w, grid_height=self.env.grid.h)
        w, h = self.env.grid.w, self.env.grid.h
        self.screen = pygame.display.set_mode(((w + PANEL_TILES) * SCALE, h * SCALE + PANEL_H))
        pygame.display.set_caption("Mini Motorways - R/M/B/O/T build mode | SPACE run")
        self.clock = pygame.time.Clock()
        self.font = pygame.font.Font(FONT_NAME, 18)
        self.small = pygame.font.Font(FONT_NAME, 14)

        self.running_sim = False
        self.mode = ActionType.ROAD
        self.since_step = 0
        self.observation = self.env.get_observation()

    # ----- Interaction -----
    def handle_click(self, pos, button) -> bool:
        """LMB builds with the current mode, RMB removes. Each click is one env step."""
        if pos is None or self.env.is_done():
            return False
        x, y = pos
        if button == 1:
            action = (int(self.mode), x, y)
        elif button == 3:
            action = (int(ActionType.REMOVE), x, y)
        else:
            return False
        self.observation = self.env.step(action)
        return True

    def step(self, n=1, use_agent=False):
        for _ in range(n):
            if self.env.is_done():
                break
            if use_agent:
                action = self.agent.get_action(self.observation)
            else:
                action = (int(ActionType.PASS), 0, 0)
            self.observation = self.env.step(action)

    def new_episode(self):
        self.observation = self.env.reset()

    # ----- Render -----
    def draw_world(self):
        self.screen.blit(pil_to_surface(render_image(self.env, scale=SCALE)), (0, 0))

    def draw_panel(self, hover: Optional[Tuple[int, int]]):
        w, h = self.env.grid.w, self.env.grid.h
        panel_rect = pygame.Rect(0, h * SCALE, (w + PANEL_TILES) * SCALE, PANEL_H)
        self.screen.fill(BG_COLOR, panel_rect)

        running = "RUN" if self.running_sim else "PAUSE"
        line1 = (f"[{running}] step={self.env.current_step} score={self.env.score} cars={self.env.car_count} "
                 f"penalty={self.env.congestion_penalty} mode={self.mode.name}")
        if self.env.is_done():
            line1 += f"  GAME OVER ({self.env.termination_reason.value})"
        line2 = "LMB=build | RMB=remove | R/M/B/O/T mode | SPACE run/pause | S/F step | N new | P screenshot"
        self.screen.blit(self.font.render(line1, True, WHITE), (10, h * SCALE + 6))
        self.screen.blit(self.small.render(line2, True, WHITE), (10, h * SCALE + 28))

        if hover:
            x, y = hover
            t = self.env.grid.tile_at(hover)
            info = f"hover=({x},{y}) type={t.name}"
            if t in (TileType.HOUSE, TileType.BUSINESS):
                b = next(b for b in self.env.buildings if b.position == hover)
                info += f" | {b.color.name} spawned={b.cars_spawned}/{b.max_cars}"
            cars_here = sum(1 for c in self.env.cars if c.position == hover)
            if cars_here:
                info += f" | cars={cars_here}"
            self.screen.blit(self.small.render(info, True, WHITE), (10, h * SCALE + 44))

    def draw(self, hover=None):
        self.screen.fill(BG_COLOR)
        self.draw_world()
        self.draw_panel(hover)
        pygame.display.flip()

    # ----- Main loop -----
    def run(self):
        w, h = self.env.grid.w, self.env.grid.h
        while True:
            dt = self.clock.tick(FPS)
            hover = None

            for event in pygame.event.get():
                if event.type == QUIT:
                    pygame.quit()
                    return
                elif event.type == KEYDOWN:
                    if event.key == K_SPACE:
                        self.running_sim = not self.running_sim
                    elif event.key == K_s:
                        self.step(1)
                    elif event.key == K_f:
                        self.step(10)
                    elif event.key == K_n:
                        self.new_episode()
                    elif event.key == K_p:
                        path = os.path.abspath("screenshot.png")
                        pygame.image.save(self.screen, path)
                        print(f"Saved: {path}")
                    elif event.key in MODE_KEYS:
                        self.mode = MODE_KEYS[event.key]
                elif event.type == MOUSEBUTTONDOWN:
                    self.handle_click(grid_pos_from_mouse(*event.pos, w, h), event.button)

            if self.running_sim:
                self.since_step += dt
                if self.since_step >= STEP_EVERY_MS:
                    self.since_step = 0
                    self.step(1, use_agent=True)

            hover = grid_pos_from_mouse(*pygame.mouse.get_pos(), w, h)
            self.draw(hover)


if __name__ == "__main__":
    App().run()
