"""
simulate_scenario.py : crée une livraison de démonstration et rejoue tout son
calendrier d'un coup (advance-status en boucle).

Usage :
    cd cargoflash/backend
    python simulate_scenario.py                      # São Paulo → Manaus
    python simulate_scenario.py Curitiba PR
"""
import asyncio
import os
import sys

sys.path.append(os.path.dirname(os.path.abspath(__file__)))
from database import connect_db, close_db
from models.delivery import DeliveryCreate
from models.simulation import AdvanceOutcome
from services.simulation_service import advance_now, create_delivery, get_pending_schedule


async def main(city: str, state: str):
    await connect_db()
    try:
        delivery = await create_delivery(DeliveryCreate(
            recipient_name="Destinatário Teste",
            destination_address="Rua de Teste, 100",
            destination_city=city,
            destination_state=state,
            package_description="Pacote de demonstração",
        ))
        delivery_id = delivery["delivery_id"]
        print(f"📦 {delivery['tracking_code']} ({delivery_id}) → {city}/{state}")
        print(f"   Entrega estimada : {delivery['estimated_delivery']}")
        for warning in delivery["warnings"]:
            print(f"   ⚠️  {warning}")

        for event in await get_pending_schedule(delivery_id):
            print(f"   {event['scheduled_for']:%Y-%m-%d %H:%M}  {event['progress_percent']:5.1f}%  "
                  f"{event['new_status'] or '-':<17} {event['description']}")

        while True:
            result = await advance_now(delivery_id)
            if result.outcome != AdvanceOutcome.APPLIED:
                print(f"⏹️  {result.message}")
                break
            print(f"✅ {result.status.value:<17} reste {result.remaining_updates}")
    finally:
        await close_db()


if __name__ == "__main__":
    args = sys.argv[1:] or ["Manaus", "AM"]
    asyncio.run(main(args[0], args[1]))
