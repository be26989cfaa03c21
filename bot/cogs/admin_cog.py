"""
Admin Cog — Owner-only controls for the narration pipeline.

Commands: !maintenance [on|off], !narrator
"""

import logging
import discord
from discord.ext import commands

logger = logging.getLogger("Admin_Cog")

_ON = {"on", "ligar", "ligado", "true", "1"}
_OFF = {"off", "desligar", "desligado", "false", "0"}


class AdminCog(commands.Cog, name="Admin"):
    """Maintenance toggle and runtime status for bot owners."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.pipeline = bot.pipeline
        self.store = bot.store

    async def cog_check(self, ctx) -> bool:
        if str(ctx.author.id) in self.pipeline.owners:
            return True
        return await self.bot.is_owner(ctx.author)

    # ------------------------------------------------------------------
    # !maintenance
    # ------------------------------------------------------------------
    @commands.command(name="maintenance")
    async def maintenance_cmd(self, ctx, mode: str = ""):
        """Show or toggle maintenance mode."""
        mode = mode.strip().lower()
        if mode in _ON:
            self.pipeline.maintenance = True
        elif mode in _OFF:
            self.pipeline.maintenance = False
        elif mode:
            await ctx.send("Use `!maintenance on` ou `!maintenance off`.")
            return

        state = "ativada" if self.pipeline.maintenance else "desativada"
        if mode:
            logger.info(f"Maintenance mode set to {self.pipeline.maintenance} by {ctx.author}")
        await ctx.send(f"🔧 Manutenção **{state}**.")

    # ------------------------------------------------------------------
    # !narrator
    # ------------------------------------------------------------------
    @commands.command(name="narrator")
    async def narrator_status(self, ctx):
        """Open windows, cooldowns, models and store state."""
        status = self.pipeline.status()
        embed = discord.Embed(
            title=f"Status do {self.pipeline.bot_name}",
            color=discord.Color.orange() if status["maintenance"] else discord.Color.green(),
        )
        embed.add_field(name="Manutenção", value="sim" if status["maintenance"] else "não")
        embed.add_field(name="Janelas abertas", value=str(status["open_windows"]))
        embed.add_field(name="Cooldowns ativos", value=str(status["cooldowns"]))
        embed.add_field(name="Modelos", value="\n".join(status["models"]) or "-", inline=False)

        if status["store_connected"]:
            try:
                stats = await self.store.get_stats()
                value = "\n".join(f"{name}: {count}" for name, count in stats.items())
            except Exception as e:
                logger.error(f"Store stats failed: {e}", exc_info=True)
                value = "conectado (erro ao contar documentos)"
        else:
            value = "desconectado"
        embed.add_field(name="Banco de dados", value=value, inline=False)

        await ctx.send(embed=embed)

    async def cog_command_error(self, ctx, error):
        if isinstance(error, commands.CheckFailure):
            return
        logger.error(f"Admin command failed: {error}", exc_info=error)


async def setup(bot: commands.Bot):
    await bot.add_cog(AdminCog(bot))
